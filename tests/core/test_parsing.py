"""Tests for the tokenizer, option parser and value coercion."""

import pytest

from servicectl.core.parsing import coerce_value, parse_options, tokenize


class TestTokenize:
    def test_whitespace_separates_tokens(self):
        assert tokenize("get  documents\t--limit 5") == ["get", "documents", "--limit", "5"]

    def test_blank_input_yields_no_tokens(self):
        assert tokenize("") == []
        assert tokenize("   \t ") == []

    def test_mixed_quotes_inside_single_quoted_span(self):
        assert tokenize("'It\\'s \"quoted\"'") == ['It\'s "quoted"']

    def test_escaped_double_quotes(self):
        assert tokenize('say "He said \\"hi\\""') == ["say", 'He said "hi"']

    def test_other_quote_char_is_literal(self):
        assert tokenize("\"don't stop\"") == ["don't stop"]

    def test_control_escapes(self):
        assert tokenize('"line1\\nline2\\tend"') == ["line1\nline2\tend"]

    def test_escaped_backslash(self):
        assert tokenize("C:\\\\Users") == ["C:\\Users"]

    def test_unknown_escape_is_preserved(self):
        assert tokenize("a\\qb") == ["a\\qb"]

    def test_escaped_space_stays_literal_in_one_token(self):
        assert tokenize("my\\ file.txt") == ["my\\ file.txt"]

    def test_unterminated_quote_closes_at_end(self):
        warnings = []
        assert tokenize('store --content "open ended', warnings) == ["store", "--content", "open ended"]
        assert len(warnings) == 1
        assert "Unterminated" in warnings[0]

    def test_terminated_quote_has_no_warning(self):
        warnings = []
        tokenize('"closed"', warnings)
        assert warnings == []


class TestCoerceValue:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("true", True),
            ("false", False),
            ("42", 42),
            ("-7", -7),
            ("3.5", 3.5),
            ("1e3", 1000.0),
            ('{"a": 1}', {"a": 1}),
            ("[1, 2]", [1, 2]),
            ("{not json", "{not json"),
            ("hello", "hello"),
            ("True", "True"),
            ("", ""),
        ],
    )
    def test_precedence(self, raw, expected):
        value = coerce_value(raw)
        assert value == expected
        assert type(value) is type(expected)


class TestParseOptions:
    @pytest.mark.parametrize(
        "value,expected",
        [("yes", "yes"), ("true", True), ("10", 10), ("0.5", 0.5), ('["a","b"]', ["a", "b"])],
    )
    def test_equals_form(self, value, expected):
        options, positionals = parse_options([f"--key={value}"])
        assert options == {"key": expected}
        assert positionals == []

    def test_equals_form_splits_on_first_equals_only(self):
        options, _ = parse_options(["--filter=name=value"])
        assert options == {"filter": "name=value"}

    def test_long_option_consumes_next_token(self):
        options, positionals = parse_options(["--limit", "10", "--query", "auth"])
        assert options == {"limit": 10, "query": "auth"}
        assert positionals == []

    def test_long_option_before_dash_token_is_flag(self):
        options, _ = parse_options(["--verbose", "--limit", "3"])
        assert options == {"verbose": True, "limit": 3}

    def test_trailing_long_option_is_flag(self):
        options, _ = parse_options(["--detailed"])
        assert options == {"detailed": True}

    def test_short_option(self):
        options, positionals = parse_options(["-q", "term", "extra"])
        assert options == {"q": "term"}
        assert positionals == ["extra"]

    def test_short_flag_followed_by_option(self):
        options, _ = parse_options(["-y", "--force"])
        assert options == {"y": True, "force": True}

    def test_multi_letter_single_dash_is_positional(self):
        options, positionals = parse_options(["-abc"])
        assert options == {}
        assert positionals == ["-abc"]

    def test_double_dash_ends_options(self):
        options, positionals = parse_options(["--a", "1", "--", "--b", "2"])
        assert options == {"a": 1}
        assert positionals == ["--b", "2"]
