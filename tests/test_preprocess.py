#!/usr/bin/env python3
"""
Tests for the source rewrites applied before compilation.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffeemap.preprocess import (
    insert_block_comment_lines,
    preprocess,
    preprocess_aggressive,
    tweak_empty_lines,
)
from coffeemap.sentinels import RECEIVER, Stage, violations


class TestRewrites(unittest.TestCase):
    """Tests for the single-line rewrites"""

    def test_dangling_dot_is_terminated(self):
        """`a.` at the end of a line gets a statement separator"""
        self.assertEqual(preprocess("a.bbb\nx.").text, "a.bbb\nx.;")

    def test_range_operator_untouched(self):
        """`..` is not a dangling member access"""
        self.assertEqual(preprocess("x = [1..").text, "x = [1..")

    def test_lone_receiver(self):
        """A lone `@` becomes a receiver expression"""
        self.assertEqual(preprocess("x = @").text, f"x = {RECEIVER.marker}")
        self.assertEqual(preprocess("f @\ny").text, f"f {RECEIVER.marker}\ny")

    def test_receiver_member_untouched(self):
        """`@a` already compiles"""
        self.assertEqual(preprocess("x = @a").text, "x = @a")

    def test_bare_identifier_below_object_key(self):
        """`key2` below `key1: 1` becomes `key2:key2`"""
        text = "obj =\n  key1: 1\n  key2"
        self.assertEqual(preprocess(text).text, "obj =\n  key1: 1\n  key2:key2")

    def test_bare_identifier_at_top_level(self):
        """Top level objects work too"""
        self.assertEqual(preprocess("a: 1\nb").text, "a: 1\nb:b")

    def test_statement_keywords_not_completed(self):
        """`return` below a key is a statement, not a key"""
        text = "f = ->\n  a: 1\n  return"
        self.assertEqual(preprocess(text).text, text)

    def test_trailing_space_is_marked(self):
        """Exactly one trailing space reserves a new property position"""
        self.assertEqual(preprocess("f ").text, "f ↯:↯")
        self.assertEqual(preprocess("f  ").text, "f  ")

    def test_trailing_comma_before_brace(self):
        """`{a, }` keeps its length"""
        text = preprocess("x = {a, }").text
        self.assertEqual(text, "x = {a,↯}")
        self.assertEqual(len(text), len("x = {a, }"))

    def test_output_has_only_allowed_sentinels(self):
        """Preprocessed text never contains a placeholder"""
        text = preprocess("x = @\na.\nb \n  \n").text
        self.assertEqual(violations(text, Stage.PREPROCESSED), [])


class TestBlockComments(unittest.TestCase):
    """Tests for block comment line insertion"""

    def test_inserted_above_each_block_comment_line(self):
        """Every `###` line gets a `#` line above it"""
        lines = ["a", "###", "doc", "###", "b"]
        inserted = insert_block_comment_lines(lines)
        self.assertEqual(inserted, [1, 4])
        self.assertEqual(lines, ["a", "#", "###", "doc", "#", "###", "b"])

    def test_longer_hash_runs_untouched(self):
        """`####` lines are line comments"""
        lines = ["####", "a"]
        self.assertEqual(insert_block_comment_lines(lines), [])

    def test_preprocess_reports_inserted_lines(self):
        """Inserted lines are recorded in the output numbering"""
        result = preprocess("a\n###* doc ###\nb")
        self.assertEqual(result.text, "a\n#\n###* doc ###\nb")
        self.assertEqual(result.inserted_lines, (1,))


class TestEmptyLines(unittest.TestCase):
    """Tests for empty line preservation"""

    def test_indented_empty_line_is_tweaked(self):
        """An indented empty line inside an object keeps a mapping"""
        lines = ["obj =", "  a: 1", "  ", "  b: 2"]
        self.assertEqual(tweak_empty_lines(lines), [2])
        self.assertEqual(lines[2], "  ᛟ:ᛟ")

    def test_line_before_deeper_block_untouched(self):
        """The sentinel would open a block and change the meaning"""
        lines = ["if a", "  ", "    b"]
        self.assertEqual(tweak_empty_lines(lines), [])
        self.assertEqual(lines[1], "  ")

    def test_unindented_empty_line_untouched(self):
        """Only indented empty lines are preserved"""
        lines = ["a", "", "b"]
        self.assertEqual(tweak_empty_lines(lines), [])

    def test_tweak_lines_count_inserted_lines(self):
        """Tweak lines are numbered after block comment insertion"""
        result = preprocess("obj =\n  ###\n  x\n  ###\n  a: 1\n  \n  b: 2")
        self.assertEqual(result.inserted_lines, (1, 4))
        self.assertEqual(result.object_tweak_lines, (7,))


class TestAggressive(unittest.TestCase):
    """Tests for rewrites that may break valid code"""

    def test_close_open_string(self):
        """A lone quote gets its partner"""
        self.assertEqual(preprocess_aggressive('x = "abc'), 'x = "abc"')

    def test_close_open_call(self):
        """An open call paren is closed"""
        self.assertEqual(preprocess_aggressive("f(a, b"), "f(a, b)")

    def test_remove_trailing_brace(self):
        """A trailing lone brace is dropped"""
        self.assertEqual(preprocess_aggressive("x = {"), "x =")

    def test_spreads(self):
        """Spread operators become keys"""
        self.assertEqual(preprocess_aggressive("f ...args"), "f _: args")
        self.assertEqual(preprocess_aggressive("f args..."), "f args: _")

    def test_line_count_kept(self):
        """Later stages rely on unchanged line numbers"""
        text = 'a = "x\nf(1\nb = {\nc'
        self.assertEqual(preprocess_aggressive(text).count('\n'), text.count('\n'))


class TestCrlfLineEndings(unittest.TestCase):
    """Tests for documents with `\\r\\n` line breaks"""

    def test_dangling_dot_is_terminated(self):
        """`x.` followed by a CRLF line break must not continue on the next line"""
        self.assertEqual(preprocess("x.\r\nb = 1\r\n").text, "x.;\r\nb = 1\r\n")

    def test_trailing_space_is_marked(self):
        self.assertEqual(preprocess("f \r\nb = 1").text, "f ↯:↯\r\nb = 1")

    def test_bare_identifier_below_object_key(self):
        self.assertEqual(preprocess("a: 1\r\nb").text, "a: 1\r\nb:b")

    def test_indented_empty_line_is_tweaked(self):
        """The sentinel goes before the carriage return"""
        lines = ["obj =\r", "  a: 1\r", "  \r", "  b: 2"]
        self.assertEqual(tweak_empty_lines(lines), [2])
        self.assertEqual(lines[2], "  ᛟ:ᛟ\r")

    def test_aggressive_rewrites(self):
        self.assertEqual(preprocess_aggressive('x = "abc\r\nf(a\r\ny = {\r\n'),
                         'x = "abc"\r\nf(a)\r\ny =\r\n')


if __name__ == '__main__':
    unittest.main()
