import json

from unittest.mock import patch

from cmdrefinery.lib.batch import (
    DepthExceeded,
    InterpreterOptions,
    InvalidOptions,
    interpret,
)
from cmdrefinery.lib.environment import environment

from .. import TestBase


class TestInterpreter(TestBase):

    def test_nested_call_resolves_variable(self):
        stack = interpret('cmd /c "set x=calc&& call %x%"')
        self.assertListEqual(list(stack.commands()), [
            'cmd /c "set x=calc&& call %x%"',
            'set x=calc',
            'call %x%',
            'calc',
        ])
        self.assertEqual(len(stack), 3)

    def test_nested_cmd_scoping(self):
        stack = interpret('cmd /c "set x=y"')
        self.assertEqual(len(stack), 2)
        inner, outer = stack
        self.assertEqual(inner.vars.nextframe, {'x': 'y'})
        self.assertEqual(inner.vars.thisframe, {})
        self.assertEqual(outer.vars.thisframe, {})
        self.assertEqual(outer.vars.nextframe, {})
        self.assertEqual(inner.options, {'run_then_terminate': True})
        self.assertEqual(inner.depth, 1)
        self.assertIs(stack.root, outer)

    def test_cmd_frame_inherits_assignments(self):
        stack = interpret('set a=1& cmd /c "echo %a%"', vars={'b': '2'})
        inner = stack[0]
        self.assertEqual(inner.vars.thisframe, {'a': '1'})
        self.assertListEqual([r.text for r in inner.commands], ['echo 1'])

    def test_percent_expansion_happens_before_execution(self):
        stack = interpret('set x=1& echo %x%')
        self.assertListEqual(list(stack.commands()), ['set x=1', 'echo %x%'])

    def test_delayed_expansion_option(self):
        stack = interpret('set x=1& echo !x!', delayed_expansion=True)
        self.assertListEqual(list(stack.commands()), ['set x=1', 'echo 1'])
        stack = interpret('set x=1& echo !x!')
        self.assertListEqual(list(stack.commands()), ['set x=1', 'echo !x!'])

    def test_delayed_expansion_switch(self):
        stack = interpret('cmd /V:ON /c "set x=1& echo !x!"')
        self.assertListEqual(list(stack.commands(skip=['cmd'])), ['set x=1', 'echo 1'])
        self.assertTrue(stack[0].delayed_expansion)
        stack = interpret('cmd /V:OFF /c "set x=1& echo !x!"')
        self.assertListEqual(list(stack.commands(skip=['cmd'])), ['set x=1', 'echo !x!'])

    def test_delayed_expansion_does_not_cross_cmd_boundaries(self):
        stack = interpret('cmd /V "cmd \\"set foo=bar& echo !foo!\\""')
        echo = [record for record in stack.trace() if record.command.name == 'echo']
        self.assertEqual(len(echo), 1)
        self.assertIn('!foo!', echo[0].text)
        self.assertNotIn('bar', echo[0].text)

    def test_call_swaps_frames(self):
        stack = interpret('set y=2& call set z=%y%')
        self.assertListEqual(list(stack.commands()), ['set y=2', 'call set z=%y%', 'set z=2'])
        self.assertEqual(len(stack), 2)
        self.assertEqual(stack[0].vars.thisframe, {'y': '2'})
        self.assertEqual(stack[0].vars.nextframe, {'z': '2'})

    def test_user_variables(self):
        stack = interpret('%a%%b% /c calc', vars={'A': 'c', 'b': 'md'})
        self.assertListEqual(list(stack.commands()), ['cmd /c calc', 'calc'])

    def test_default_variables(self):
        stack = interpret('%comspec:~-7,3% /c calc')
        self.assertListEqual(list(stack.commands(skip=['cmd'])), ['calc'])

    def test_obfuscated_command(self):
        stack = interpret('c^m^d.exe /c p^o^w""er^s^hell -nop -c "iex"')
        self.assertListEqual(list(stack.commands()), [
            'cmd.exe /c powershell -nop -c "iex"',
            'powershell -nop -c "iex"',
        ])

    def test_conditional_or(self):
        stack = interpret('a || b')
        self.assertListEqual(list(stack.commands()), ['a', 'b'])

    def test_trace_order_and_depth(self):
        stack = interpret('echo 1 & cmd /c "echo 2 & cmd /c echo 3" & echo 4')
        trace = stack.trace()
        self.assertListEqual([r.text for r in trace], [
            'echo 1',
            'cmd /c "echo 2 & cmd /c echo 3"',
            'echo 2',
            'cmd /c echo 3',
            'echo 3',
            'echo 4',
        ])
        self.assertListEqual([r.depth for r in trace], [0, 0, 1, 1, 2, 0])
        self.assertListEqual([r.sequence for r in trace], list(range(6)))

    def test_unidentified_command(self):
        stack = interpret('"unterminated')
        record, = stack.trace()
        self.assertEqual(record.command.name, '')
        self.assertEqual(record.text, '"unterminated')

    def test_commands_skip(self):
        stack = interpret('set x=1 & echo %x% & calc')
        self.assertListEqual(list(stack.commands(skip=['SET', 'echo'])), ['calc'])

    def test_asdict(self):
        stack = interpret('cmd /c "set x=y"')
        result = json.loads(json.dumps(stack.asdict()))
        self.assertEqual(result['errors'], [])
        inner, outer = result['frames']
        self.assertEqual(outer['commands'][0], {
            'command': {'name': 'cmd', 'line': '/c "set x=y"'},
            'options': {'run_then_terminate': True},
        })
        self.assertEqual(inner['vars'], {'thisframe': {}, 'nextframe': {'x': 'y'}})


class TestSetCommand(TestBase):

    def test_set_preserves_case_of_names(self):
        stack = interpret('set Foo=1& set FOO=2')
        self.assertEqual(stack.root.vars.nextframe, {'FOO': '2'})

    def test_set_non_ascii_names(self):
        stack = interpret('set straße=1& set STRASSE=2& call echo %STRAßE%')
        self.assertEqual(stack.root.vars.nextframe, {'straße': '1', 'STRASSE': '2'})
        self.assertListEqual(list(stack.commands(skip=['set', 'call'])), ['echo 1'])

    def test_set_keeps_trailing_whitespace(self):
        stack = interpret('set x=a  & echo')
        self.assertEqual(stack.root.vars.nextframe, {'x': 'a  '})
        self.assertEqual(next(stack.commands()), 'set x=a')

    def test_set_empty_value_removes_variable(self):
        stack = interpret('set x=1& set x=')
        self.assertEqual(stack.root.vars.nextframe, {})

    def test_quoted_set(self):
        stack = interpret('set "x=a b"trailing')
        self.assertEqual(stack.root.vars.nextframe, {'x': 'a b'})

    def test_set_with_escapes(self):
        stack = interpret('set x=a^&b& call echo %x%')
        self.assertEqual(stack.root.vars.nextframe, {'x': 'a&b'})

    def test_set_prompt_does_not_assign(self):
        stack = interpret('set /p x=Enter: ')
        self.assertEqual(stack.root.vars.nextframe, {})
        self.assertListEqual(list(stack.commands()), ['set /p x=Enter:'])

    def test_set_without_assignment(self):
        stack = interpret('set x')
        self.assertEqual(stack.root.vars.nextframe, {})

    def test_arithmetic(self):
        stack = interpret('set /a x=3*(2+1)')
        self.assertEqual(stack.root.vars.nextframe, {'x': '9'})

    def test_arithmetic_number_formats(self):
        stack = interpret('set /A x=0x10+010')
        self.assertEqual(stack.root.vars.nextframe, {'x': '24'})

    def test_arithmetic_compound_assignment(self):
        stack = interpret('set /a y+=2', vars={'Y': '5'})
        self.assertEqual(stack.root.vars.nextframe, {'y': '7'})

    def test_arithmetic_sequence(self):
        stack = interpret('set /a x=7/2, y=x*-3, z=x%2')
        self.assertEqual(stack.root.vars.nextframe, {'x': '3', 'y': '-9', 'z': '1'})

    def test_arithmetic_overflow(self):
        stack = interpret('set /a x=0x7FFFFFFF+1')
        self.assertEqual(stack.root.vars.nextframe, {'x': '-2147483648'})

    def test_arithmetic_failure_leaves_variables(self):
        for expression in ('x=1/0', 'x=foo(', 'x=2**3'):
            stack = interpret(F'set /a {expression}', vars={'x': '5'})
            self.assertEqual(stack.root.vars.nextframe, {}, msg=expression)

    def test_glued_set_switch(self):
        stack = interpret('set/a x=1+1')
        self.assertEqual(stack.root.vars.nextframe, {'x': '2'})

    def test_setlocal(self):
        stack = interpret('setlocal EnableDelayedExpansion& set x=1& echo !x!')
        self.assertListEqual(list(stack.commands(skip=['setlocal', 'set'])), ['echo 1'])
        self.assertTrue(stack.root.delayed_expansion)
        stack = interpret('setlocal DisableExtensions', enable_extensions=True)
        self.assertFalse(stack.root.extensions)


class TestGroups(TestBase):

    def test_grouped_set(self):
        stack = interpret('(set x=1)')
        self.assertEqual(stack.root.vars.nextframe, {'x': '1'})
        self.assertListEqual(list(stack.commands()), ['set x=1'])

    def test_grouped_cmd(self):
        stack = interpret('(cmd /c calc)')
        self.assertListEqual(list(stack.commands()), ['cmd /c calc', 'calc'])

    def test_grouped_call(self):
        stack = interpret('(call calc)')
        self.assertListEqual(list(stack.commands()), ['call calc', 'calc'])

    def test_group_with_several_commands(self):
        stack = interpret('(set x=a& set y=b)&& call echo %x%%y%')
        self.assertEqual(stack.root.vars.nextframe, {'x': 'a', 'y': 'b'})
        self.assertListEqual(list(stack.commands(skip=['set', 'call'])), ['echo ab'])

    def test_parentheses_outside_of_groups_are_kept(self):
        stack = interpret('set x=a)b& if 1==1 (calc)')
        self.assertEqual(stack.root.vars.nextframe, {'x': 'a)b'})
        self.assertListEqual(list(stack.commands(skip=['set'])), ['if 1==1 (calc)'])


class TestDepthLimit(TestBase):

    def test_self_referential_cmd(self):
        stack = interpret('cmd /c cmd')
        self.assertListEqual(list(stack.commands()), ['cmd /c cmd'])
        self.assertEqual(len(stack), 2)
        self.assertEqual(stack.errors, [])

    def test_self_referential_cmd_exe(self):
        stack = interpret('cmd /c "cmd.exe"')
        self.assertListEqual(list(stack.commands()), ['cmd /c "cmd.exe"'])

    def test_depth_exceeded(self):
        stack = interpret('cmd /c cmd /c cmd /c cmd /c calc', max_depth=2)
        self.assertListEqual(list(stack.commands()), [
            'cmd /c cmd /c cmd /c cmd /c calc',
            'cmd /c cmd /c cmd /c calc',
            'cmd /c cmd /c calc',
        ])
        self.assertEqual(len(stack), 3)
        error, = stack.errors
        self.assertIsInstance(error, DepthExceeded)
        self.assertEqual(error.depth, 2)

    def test_siblings_survive_depth_exceeded(self):
        stack = interpret('call call call calc & echo done', max_depth=1)
        self.assertIn('echo done', list(stack.commands()))
        self.assertEqual(len(stack.errors), 1)

    def test_default_depth(self):
        with patch.object(environment.max_depth, 'value', 0):
            stack = interpret('cmd /c ' * 40 + 'calc')
        self.assertEqual(len(stack), 33)
        self.assertEqual(len(stack.errors), 1)

    def test_depth_from_environment(self):
        with patch.object(environment.max_depth, 'value', 3):
            self.assertEqual(InterpreterOptions().max_depth, 3)
        with patch.object(environment.max_depth, 'value', -1):
            self.assertEqual(InterpreterOptions().max_depth, 32)


class TestOptions(TestBase):

    def test_defaults(self):
        options = InterpreterOptions()
        self.assertTrue(options.strip_escapes)
        self.assertTrue(options.merge_contiguous_literals)
        self.assertTrue(options.merge_contiguous_strings)
        self.assertTrue(options.strip_empty_strings)
        self.assertFalse(options.strip_commas)
        self.assertFalse(options.delayed_expansion)
        self.assertTrue(options.enable_extensions)
        self.assertEqual(options.vars, {})

    def test_invalid_options(self):
        with self.assertRaises(InvalidOptions):
            InterpreterOptions(strip_escapes='yes')
        with self.assertRaises(InvalidOptions):
            InterpreterOptions(vars={'a': 1})
        with self.assertRaises(InvalidOptions):
            InterpreterOptions(max_depth=-1)
        with self.assertRaises(ValueError):
            InterpreterOptions(max_depth=True)

    def test_invalid_interpret_arguments(self):
        with self.assertRaises(InvalidOptions):
            interpret('calc', InterpreterOptions(), strip_commas=True)
        with self.assertRaises(InvalidOptions):
            interpret('calc', bogus=True)
        with self.assertRaises(InvalidOptions):
            interpret('calc', {'strip_commas': True})

    def test_options_object(self):
        options = InterpreterOptions(strip_escapes=False)
        self.assertListEqual(list(interpret('c^alc', options).commands()), ['c^alc'])
