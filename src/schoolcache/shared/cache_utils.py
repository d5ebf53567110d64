"""Cache key utilities.

This module derives cache keys, file-safe names and invalidation tags. Query
keys are built from the SQL text and its bound parameters so that the same
statement with different parameters never shares an entry.

Key Features:
    - Order-sensitive query fingerprints (``query_<md5>``)
    - SHA-256 hashing and shard selection for on-disk layout
    - Table-name extraction for automatic invalidation tags

Example:
    >>> from schoolcache.shared.cache_utils import query_cache_key, table_tag
    >>> query_cache_key("SELECT * FROM students WHERE id = ?", [7])[:6]
    'query_'
    >>> table_tag("students")
    'table_students'
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping, Sequence
from typing import Any

import orjson

from schoolcache.shared.constants import Cache, CacheKeys

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_TABLE_REFERENCE = re.compile(
    r"\b(?:FROM|JOIN|INTO|UPDATE)\s+([`\"\[]?[A-Za-z_][\w.`\"\[\]]*)",
    re.IGNORECASE,
)
_SUBQUERY_START = re.compile(r"\s*(?:SELECT|WITH)\b", re.IGNORECASE)


def key_hash(key: str) -> str:
    """Return the SHA-256 hex digest of a key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def safe_key(key: str, max_length: int = Cache.MAX_SAFE_KEY_LENGTH) -> str:
    """Make a key usable as part of a file name.

    Every character outside ``[A-Za-z0-9_-]`` is replaced by ``_`` and the
    result is truncated. The hash that follows it in the file name keeps
    distinct keys distinct.

    Example:
        >>> safe_key("students page/1")
        'students_page_1'
    """
    return _UNSAFE_KEY_CHARS.sub("_", key)[:max_length]


def shard_for(key: str, length: int = Cache.SHARD_LENGTH) -> str:
    """Return the shard directory name for a key."""
    return key_hash(key)[:length]


def serialize_params(params: Sequence[Any] | Mapping[str, Any] | None) -> bytes:
    """Serialize query parameters in their given order.

    Sequences keep their element order and mappings keep insertion order,
    so ``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}`` serialize differently.
    Values orjson cannot encode natively fall back to ``str()``.
    """
    if params is None:
        return b"null"
    if isinstance(params, Mapping):
        payload: Any = dict(params)
    else:
        payload = list(params)
    return orjson.dumps(payload, default=str)


def query_cache_key(
    sql: str,
    params: Sequence[Any] | Mapping[str, Any] | None = None,
) -> str:
    """Build the cache key for a query and its bound parameters.

    Args:
        sql: Query text, used verbatim.
        params: Bound parameters, serialized in call order.

    Returns:
        ``"query_"`` followed by the MD5 hex digest of the SQL text and
        the serialized parameters.
    """
    digest = hashlib.md5(  # noqa: S324  # nosec B324 - fingerprint, not security
        sql.encode("utf-8") + serialize_params(params),
    ).hexdigest()
    return f"{CacheKeys.QUERY_PREFIX}{digest}"


def _inside_function_call(sql: str, position: int) -> bool:
    """Whether ``position`` sits in parentheses that do not open a subquery.

    ``EXTRACT(YEAR FROM created_at)`` and ``TRIM(LEADING '0' FROM code)`` use
    FROM as an argument separator; ``(SELECT ... FROM t)`` is a subquery.
    """
    depth = 0
    for index in range(position - 1, -1, -1):
        char = sql[index]
        if char == ")":
            depth += 1
        elif char == "(":
            if depth == 0:
                return _SUBQUERY_START.match(sql, index + 1) is None
            depth -= 1
    return False


def extract_table_names(sql: str) -> list[str]:
    """Return the tables a statement reads or writes.

    Looks at identifiers following FROM, JOIN, INTO and UPDATE, at the top
    level or inside a parenthesized subquery. FROM inside a function call
    such as ``EXTRACT(YEAR FROM created_at)`` is not a table reference.
    Quoting and schema prefixes are stripped and names are lowercased.
    Order of first appearance is kept and duplicates are dropped. String
    literals are not parsed, so a parenthesis inside a quoted value can
    confuse the function-call check.

    Example:
        >>> extract_table_names(
        ...     "SELECT s.* FROM students s JOIN classes c ON c.id = s.class_id"
        ... )
        ['students', 'classes']
    """
    tables: list[str] = []
    for match in _TABLE_REFERENCE.finditer(sql):
        if _inside_function_call(sql, match.start()):
            continue
        name = match.group(1).strip("`\"[]")
        name = name.split(".")[-1].strip("`\"[]").lower()
        if name and name not in tables:
            tables.append(name)
    return tables


def table_tag(table_name: str) -> str:
    """Tag shared by every cached query that touched a table."""
    return f"{CacheKeys.TABLE_TAG_PREFIX}{table_name}"


def user_tag(user_id: int | str) -> str:
    """Tag shared by every cached entry that belongs to a user."""
    return f"{CacheKeys.USER_PREFIX}{user_id}"


def academic_year_tag(academic_year: str) -> str:
    return f"{CacheKeys.ACADEMIC_YEAR_TAG_PREFIX}{academic_year}"


def user_cache_key(user_id: int | str, key: str) -> str:
    return f"{CacheKeys.USER_PREFIX}{user_id}_{key}"


def fragment_cache_key(key: str) -> str:
    return f"{CacheKeys.FRAGMENT_PREFIX}{key}"
