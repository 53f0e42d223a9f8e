#!/usr/bin/env python3
"""
Tests for the compile ladder and its fake-line candidates.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffeemap.compiler import CompileFailure, CompileSuccess
from coffeemap.errors import FakeLineError
from coffeemap.ladder import (
    Candidate,
    ErrorLine,
    candidates,
    compile_ladder,
    first_success,
    join_previous_statement,
)
from coffeemap.result import ColumnMapping, FakeLineMechanism, SourceMap
from coffeemap.text import SourceText

from fakes import ExplodingCompiler, FakeCompiler


class PlaceholderDroppingCompiler:
    """Compiles fake lines, but loses the placeholder"""

    def compile(self, text):
        if 'ᛝ' in text:
            return CompileSuccess('x;', SourceMap())
        return FakeCompiler().compile(text)


def contents(text, line_no=0):
    return [c.content for c in candidates(ErrorLine.locate(SourceText(text), line_no))]


class TestCandidates(unittest.TestCase):
    """Tests for fake-line candidate order"""

    def test_trailing_dot_first(self):
        """A terminated dangling dot is tried without its suffix first"""
        self.assertEqual(contents("x.;"), ["x.ᛝ", "ᛝ", "if ᛝ", "ᛝ:ᛝ"])

    def test_object_key_line(self):
        """Object-shaped lines try the key form first"""
        self.assertEqual(contents("  key: {"), ["ᛝ:ᛝ", "ᛝ", "if ᛝ"])

    def test_plain_line(self):
        """Other lines try the key form last"""
        self.assertEqual(contents("foo("), ["ᛝ", "if ᛝ", "ᛝ:ᛝ"])

    def test_optional_member_suffix(self):
        """`?.` is removed as a whole"""
        found = candidates(ErrorLine.locate(SourceText("x?.;"), 0))[0]
        self.assertEqual(found.content, "x.ᛝ")
        self.assertEqual(found.removed_suffix, "?.;")
        self.assertIs(found.mechanism, FakeLineMechanism.MODIFIED_SOURCE)


class TestErrorLine(unittest.TestCase):
    """Tests for ErrorLine substitution"""

    def test_substitute_keeps_length(self):
        """The substituted line is padded, so no other line moves"""
        text = "a\n  foo(\nb"
        error_line = ErrorLine.locate(SourceText(text), 1)
        self.assertEqual(error_line.indentation, "  ")
        self.assertEqual(error_line.substitute(text, "ᛝ"), "a\n  ᛝ   \nb")

    def test_locate_clamps(self):
        """Errors reported after the last line use the last line"""
        self.assertEqual(ErrorLine.locate(SourceText("a\nb"), 5).line_no, 1)


class TestHelpers(unittest.TestCase):
    """Tests for the ladder's helpers"""

    def test_first_success_stops(self):
        """Candidates after the first success are not tried"""
        tried = []

        def attempt(candidate):
            tried.append(candidate.content)
            if candidate.content == "b":
                return CompileSuccess("b;", SourceMap())
            return CompileFailure(())

        found = first_success(
            [Candidate(c, FakeLineMechanism.SOURCE_IN_OUTPUT) for c in "abc"], attempt)
        self.assertEqual(found[0].content, "b")
        self.assertEqual(tried, ["a", "b"])

    def test_first_success_none(self):
        """Nothing compiles"""
        self.assertIsNone(first_success([Candidate("a", FakeLineMechanism.SOURCE_IN_OUTPUT)],
                                        lambda c: CompileFailure(())))

    def test_join_previous_statement(self):
        """The terminator above the fake line is dropped"""
        lines = ["a;", "", "x"]
        join_previous_statement(lines, 2)
        self.assertEqual(lines, ["a ", "", "x"])


class TestCompileLadder(unittest.TestCase):
    """Tests for compile_ladder"""

    def setUp(self):
        self.compiler = FakeCompiler()

    def test_simple_compilation(self):
        """Valid text compiles once without fake line"""
        result = compile_ladder("a = 1", self.compiler)
        self.assertEqual(result.js, "a = 1;")
        self.assertIsNone(result.fake_line)
        self.assertIsNone(result.diagnostics)
        self.assertEqual(self.compiler.calls, 1)

    def test_modified_source(self):
        """A dangling dot compiles without it and is put back"""
        result = compile_ladder("a.bbb\nx.;", self.compiler)
        self.assertEqual(result.js, "a.bbb \nx.")
        self.assertEqual(result.fake_line, 1)
        self.assertIs(result.fake_line_mechanism, FakeLineMechanism.MODIFIED_SOURCE)
        self.assertEqual(len(result.diagnostics), 1)
        self.assertEqual(result.diagnostics[0].range.start.line, 1)

    def test_optional_member_put_back(self):
        """`?.` is restored in the output"""
        self.assertEqual(compile_ladder("x?.;", self.compiler).js, "x?.")

    def test_bracket_put_back(self):
        """A dangling `[` is restored in the output"""
        self.assertEqual(compile_ladder("a[", self.compiler).js, "a[")

    def test_source_in_output(self):
        """A line replaced by a placeholder is pseudo compiled into the output"""
        result = compile_ladder("x = 1\nfoo(", self.compiler)
        self.assertEqual(result.js, "x = 1 \nfoo(")
        self.assertEqual(result.fake_line, 1)
        self.assertIs(result.fake_line_mechanism, FakeLineMechanism.SOURCE_IN_OUTPUT)
        self.assertEqual(result.source_map.for_source_line(1), [ColumnMapping(1, 0, 1, 0)])

    def test_first_diagnostics_kept(self):
        """Diagnostics are those of the unmodified text"""
        result = compile_ladder("x = 1\nfoo(", self.compiler)
        diagnostic = result.diagnostics[0]
        self.assertEqual(diagnostic.message, "missing closing bracket")
        self.assertEqual((diagnostic.range.start.line, diagnostic.range.start.character), (1, 3))
        self.assertEqual(diagnostic.range.end.character, 4)
        self.assertEqual(diagnostic.source, "coffeemap")

    def test_nothing_compiles(self):
        """Without a compiling candidate only diagnostics remain"""
        result = compile_ladder("a = {{\nb", self.compiler)
        self.assertIsNone(result.js)
        self.assertIsNone(result.source_map)
        self.assertTrue(result.diagnostics)
        self.assertEqual(self.compiler.calls, 4)

    def test_unexpected_errors_propagate(self):
        """Only syntax errors are recovered from"""
        with self.assertRaises(RuntimeError):
            compile_ladder("a", ExplodingCompiler())

    def test_lost_placeholder(self):
        """A fake line that compiled without its placeholder is an error"""
        with self.assertRaises(FakeLineError):
            compile_ladder("foo(", PlaceholderDroppingCompiler())


if __name__ == '__main__':
    unittest.main()
