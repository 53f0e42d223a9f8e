#!/usr/bin/env python3
"""
Tests for the regex based pseudo-compilation.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffeemap.pseudo import pseudo_compile, receiver_expansion_before


class TestPseudoCompile(unittest.TestCase):
    """Tests for pseudo_compile"""

    def test_receiver_keyword(self):
        """`@a` becomes a member access on `this`"""
        self.assertEqual(pseudo_compile("@a.b"), "this.a.b")

    def test_implicit_call(self):
        """Implicit call parens are made explicit, padded"""
        self.assertEqual(pseudo_compile("f a"), "f(a   )")

    def test_import_untouched(self):
        """Imports need no call parens"""
        self.assertEqual(pseudo_compile("import x from 'y'"), "import x from 'y'")

    def test_keywords(self):
        """Dialect keywords become operators of the same length"""
        self.assertEqual(pseudo_compile("if a and b"), "if a && (b   )")

    def test_assignment_declares(self):
        """Bare assignments get a declaration"""
        self.assertEqual(pseudo_compile("x = 1"), "let x = 1")
        self.assertEqual(pseudo_compile("x == 1"), "x == 1")

    def test_block_comment(self):
        """`###` opens a block comment"""
        self.assertEqual(pseudo_compile("###\ndoc\n###"), "/*\ndoc\n/*")

    def test_string_interpolation(self):
        """Interpolated strings become template literals"""
        self.assertEqual(pseudo_compile('s = "a#{b}"'), "let s = `a${b}`")

    def test_line_comment(self):
        """Comments after code become line comments"""
        self.assertEqual(pseudo_compile("x. # note"), "x.// note")


class TestReceiverExpansion(unittest.TestCase):
    """Tests for receiver_expansion_before"""

    def test_counts_receivers_before_character(self):
        """Each `@` before the character grows the line by four"""
        self.assertEqual(receiver_expansion_before("@a = @b", 6), 8)
        self.assertEqual(receiver_expansion_before("@a = @b", 5), 4)
        self.assertEqual(receiver_expansion_before("a = b", 5), 0)


if __name__ == '__main__':
    unittest.main()
