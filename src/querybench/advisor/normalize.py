"""
SQL normalization and query signatures.

normalize_sql() collapses queries that differ only in literal values onto
one form, which is what N+1 detection groups on. It is a textual transform,
not a parser: malformed SQL is normalized as well as it can be and never
raises.

query_signature() is the stricter identity used for duplicate detection:
exact SQL text plus exact bound values.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Sequence

PLACEHOLDER = "?"

_NUMBER_RE = re.compile(r"\b\d+\b")
_STRING_RE = re.compile(r"('[^']*'|\"[^\"]*\")")
_WHITESPACE_RE = re.compile(r"\s+")

# Placeholder styles left after normalization: qmark, format, pyformat,
# named, and numeric ($1 becomes $? once digits are replaced).
PARAM_PATTERN = r"(?:\?|%s|%\(\w+\)s|:\w+|\$\?)"


def normalize_sql(sql: str) -> str:
    """
    Replace literal values with placeholders and collapse whitespace.

    Example:
        >>> normalize_sql("SELECT * FROM t WHERE id = 42")
        'SELECT * FROM t WHERE id = ?'
        >>> normalize_sql("SELECT *  FROM users WHERE name = 'bob'")
        'SELECT * FROM users WHERE name = ?'
    """
    if not sql:
        return ""
    normalized = _NUMBER_RE.sub(PLACEHOLDER, sql)
    normalized = _STRING_RE.sub(PLACEHOLDER, normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def _serialize_bindings(bindings: Sequence[Any]) -> str:
    """Stable text form of bound values; non-JSON values fall back to repr()."""
    return json.dumps(list(bindings), sort_keys=True, default=repr)


def query_signature(sql: str, bindings: Sequence[Any] = ()) -> str:
    """
    Hash of the exact SQL text and its exact bound values.

    Two executions share a signature only when they would return the same
    data, unlike normalize_sql() which ignores bound values entirely.
    """
    content = f"{sql}\x00{_serialize_bindings(bindings)}"
    return hashlib.sha256(content.encode()).hexdigest()[:16]
