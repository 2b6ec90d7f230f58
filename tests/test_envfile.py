"""
Tests for core/envfile.py - .env parsing for `envctl load`.
"""

import base64
import unittest

from envctl.core.envfile import EnvFileError, parse_dotenv_base64, parse_dotenv_text


class TestParseDotenv(unittest.TestCase):
    """Test cases for .env content parsing."""

    def test_comments_and_blank_lines_are_skipped(self):
        entries = parse_dotenv_text("FOO=bar\n# comment\n\nBAZ=qux\n")
        self.assertEqual(entries, [("FOO", "bar"), ("BAZ", "qux")])

    def test_export_prefix_and_quotes(self):
        text = "export A=1\nB='single quoted'\nC=\"double quoted\"\n"
        self.assertEqual(
            parse_dotenv_text(text),
            [("A", "1"), ("B", "single quoted"), ("C", "double quoted")],
        )

    def test_order_and_duplicates_are_kept(self):
        entries = parse_dotenv_text("A=1\nB=2\nA=3\n")
        self.assertEqual(entries, [("A", "1"), ("B", "2"), ("A", "3")])

    def test_references_are_not_expanded(self):
        entries = parse_dotenv_text("A=1\nB=${A}\n")
        self.assertEqual(entries, [("A", "1"), ("B", "${A}")])

    def test_empty_value(self):
        self.assertEqual(parse_dotenv_text("EMPTY=\n"), [("EMPTY", "")])

    def test_invalid_key_is_rejected(self):
        with self.assertRaises(EnvFileError) as context:
            parse_dotenv_text("GOOD=1\n1BAD=2\n")
        self.assertIn("1BAD", str(context.exception))

    def test_line_without_value_is_rejected(self):
        with self.assertRaises(EnvFileError):
            parse_dotenv_text("JUST_A_NAME\n")

    def test_unparseable_line_is_rejected(self):
        with self.assertRaises(EnvFileError):
            parse_dotenv_text("=oops\n")

    def test_base64_input(self):
        payload = base64.b64encode(b"FOO=bar\nBAZ=qux\n").decode("ascii")
        self.assertEqual(
            parse_dotenv_base64(payload + "\n"),
            [("FOO", "bar"), ("BAZ", "qux")],
        )

    def test_invalid_base64_is_rejected(self):
        with self.assertRaises(EnvFileError):
            parse_dotenv_base64("not base64!!")


if __name__ == "__main__":
    unittest.main()
