import logging
import unittest

import cmdrefinery

from cmdrefinery.lib.batch.model import Token, TokenKind


__all__ = ['cmdrefinery', 'TestBase']


class TestBase(unittest.TestCase):

    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def assertContains(self, container, member, msg=None):
        self.assertIn(member, container, msg)

    def assertTokens(self, tokens, *expected):
        """
        Compare a token sequence against pairs of token kind and text.
        """
        self.assertListEqual([(t.kind, t.text) for t in tokens], list(expected))

    @staticmethod
    def literal(text: str) -> Token:
        return Token(TokenKind.LITERAL, text)
