import io
import json

from unittest.mock import patch

import cmdrefinery

from cmdrefinery.console import deobfuscator
from cmdrefinery.lib.environment import environment

from .. import TestBase


class TestConsole(TestBase):

    def setUp(self):
        super().setUp()
        patcher = patch.object(environment.verbosity, 'value', environment.verbosity.value)
        patcher.start()
        self.addCleanup(patcher.stop)

    def run_console(self, *args, stdin: str = ''):
        with patch('sys.stdout', new_callable=io.StringIO) as stdout, patch('sys.stdin', io.StringIO(stdin)):
            deobfuscator(list(args))
            return stdout.getvalue()

    def test_version(self):
        self.assertEqual(self.run_console('-V').strip(), cmdrefinery.__version__)

    def test_commands(self):
        output = self.run_console('-c', 'cmd /c "set x=calc&& call %x%"')
        self.assertListEqual(output.splitlines(), [
            'cmd /c "set x=calc&& call %x%"',
            'set x=calc',
            'call %x%',
            'calc',
        ])

    def test_tokens(self):
        self.assertEqual(self.run_console('-t', 'p^o^w^e^r^s^h^e^l^l').strip(), 'powershell')
        self.assertEqual(self.run_console('-tk', 'c^alc').strip(), 'c^alc')

    def test_trace_from_stdin(self):
        output = self.run_console(stdin='cmd /c calc\n\nnotepad\n')
        self.assertListEqual(output.splitlines(), ['cmd /c calc', '    calc', 'notepad'])

    def test_json(self):
        output = self.run_console('-j', 'set x=1')
        self.assertEqual(json.loads(output)['frames'][0]['vars']['nextframe'], {'x': '1'})

    def test_definitions(self):
        output = self.run_console('-c', '-D', 'a=c', '-D', 'b=alc', '%a%%b%')
        self.assertEqual(output.strip(), 'calc')

    def test_delayed_expansion(self):
        output = self.run_console('-cd', 'set x=1& echo !x!')
        self.assertListEqual(output.splitlines(), ['set x=1', 'echo 1'])

    def test_invalid_arguments(self):
        with patch('sys.stderr', new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                self.run_console('-D', 'novalue', 'calc')
            with self.assertRaises(SystemExit):
                self.run_console('-m', '-1', 'calc')
            with self.assertRaises(SystemExit):
                self.run_console('-c', '-j', 'calc')
