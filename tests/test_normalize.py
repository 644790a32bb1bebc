"""Tests for SQL normalization and query signatures."""

import re

from querybench.advisor.normalize import PARAM_PATTERN, normalize_sql, query_signature


class TestNormalizeSql:
    """Tests for literal substitution."""

    def test_numbers_collapse_to_placeholder(self):
        """Queries differing only in an integer literal normalize identically."""
        assert normalize_sql("SELECT * FROM t WHERE id = 5") == normalize_sql(
            "SELECT * FROM t WHERE id = 42"
        )
        assert normalize_sql("SELECT * FROM t WHERE id = 5") == "SELECT * FROM t WHERE id = ?"

    def test_quoted_strings_collapse(self):
        """Single- and double-quoted literals become placeholders."""
        assert normalize_sql("SELECT * FROM users WHERE name = 'bob'") == (
            "SELECT * FROM users WHERE name = ?"
        )
        assert normalize_sql('SELECT * FROM users WHERE name = "alice"') == (
            "SELECT * FROM users WHERE name = ?"
        )

    def test_whitespace_collapsed_and_stripped(self):
        sql = "  SELECT *\n  FROM users\t\tWHERE id = 1  "
        assert normalize_sql(sql) == "SELECT * FROM users WHERE id = ?"

    def test_digits_inside_identifiers_kept(self):
        """Only standalone runs of digits are replaced."""
        assert normalize_sql("SELECT col1 FROM table2 WHERE x = 3") == (
            "SELECT col1 FROM table2 WHERE x = ?"
        )

    def test_existing_placeholders_untouched(self):
        assert normalize_sql("SELECT * FROM t WHERE id = ?") == "SELECT * FROM t WHERE id = ?"
        assert normalize_sql("SELECT * FROM t WHERE id = %(id_1)s") == (
            "SELECT * FROM t WHERE id = %(id_1)s"
        )

    def test_empty_and_malformed_never_raise(self):
        assert normalize_sql("") == ""
        assert normalize_sql("SELECT 'unterminated") == "SELECT 'unterminated"

    def test_idempotent(self):
        sql = "SELECT * FROM orders WHERE user_id = 7 AND status = 'paid'"
        once = normalize_sql(sql)
        assert normalize_sql(once) == once


class TestParamPattern:
    """Placeholder styles recognized after normalization."""

    def test_matches_driver_styles(self):
        pattern = re.compile(PARAM_PATTERN)
        for placeholder in ("?", "%s", "%(user_id_1)s", ":user_id", "$?"):
            assert pattern.fullmatch(placeholder), placeholder

    def test_numeric_style_after_normalization(self):
        normalized = normalize_sql("SELECT * FROM t WHERE id = $1")
        assert normalized.endswith("$?")


class TestQuerySignature:
    """Tests for exact-query identity."""

    def test_same_sql_and_bindings_match(self):
        assert query_signature("SELECT 1", [1, "a"]) == query_signature("SELECT 1", (1, "a"))

    def test_different_bindings_differ(self):
        sql = "SELECT * FROM users WHERE id = ?"
        assert query_signature(sql, [1]) != query_signature(sql, [2])

    def test_different_sql_differs(self):
        assert query_signature("SELECT 1", []) != query_signature("SELECT 2", [])

    def test_non_json_bindings_supported(self):
        """Values JSON cannot encode fall back to repr()."""
        from datetime import date

        sig = query_signature("SELECT ?", [date(2024, 1, 2)])
        assert sig == query_signature("SELECT ?", [date(2024, 1, 2)])
        assert len(sig) == 16
