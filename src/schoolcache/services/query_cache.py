"""Read-through caching for database queries.

``QueryCache`` runs statements against a DB-API 2.0 connection (qmark
paramstyle) and caches the rows under a key derived from the SQL text and
its parameters. Every cached query is tagged with ``table_<name>`` for each
table it reads, so a write to a table can invalidate all dependent results
with ``invalidate_table``. ``batch_insert`` does that itself after it commits.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from schoolcache.services.cache_manager import CacheManager
from schoolcache.shared.cache_utils import (
    extract_table_names,
    query_cache_key,
    table_tag,
    user_tag,
)
from schoolcache.shared.constants import Cache
from schoolcache.shared.errors import (
    ErrorCode,
    ErrorContext,
    InfrastructureError,
    create_config_error,
    create_validation_error,
)
from schoolcache.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Params = Sequence[Any] | Mapping[str, Any]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class QueryCache:
    """Caches query results on top of a ``CacheManager``.

    Args:
        manager: Cache service object.
        connection: DB-API 2.0 connection used by ``query`` and friends.
            Only ``remember`` and ``cache_query`` work without one.
    """

    def __init__(self, manager: CacheManager, connection: Any = None) -> None:
        self.manager = manager
        self.connection = connection

    @property
    def query_ttl(self) -> int:
        return self.manager.settings.query_ttl

    def remember(
        self,
        key: str,
        compute: Callable[[], T],
        ttl: int | None = None,
        tags: Iterable[str] | None = None,
    ) -> T:
        return self.manager.remember(key, compute, ttl, tags)

    def cache_query(
        self,
        sql: str,
        params: Params | None,
        compute: Callable[[], T],
        ttl: int | None = None,
        tags: Iterable[str] | None = None,
    ) -> T:
        """Cache ``compute()`` under the key for ``sql`` and ``params``.

        The entry is tagged with every table the statement touches plus any
        explicit ``tags``.
        """
        key = query_cache_key(sql, params)
        all_tags = [table_tag(name) for name in extract_table_names(sql)]
        if tags:
            all_tags.extend(tags)

        return self.manager.remember(
            key,
            compute,
            self.query_ttl if ttl is None else ttl,
            list(dict.fromkeys(all_tags)),
            log_context={"sql": sql, "params": str(params)},
        )

    def _require_connection(self, operation: str) -> Any:
        if self.connection is None:
            raise create_config_error(
                "QueryCache has no database connection",
                config_key="connection",
                operation=operation,
            )
        return self.connection

    def _fetch_all(self, sql: str, params: Params) -> list[dict[str, Any]]:
        """Execute ``sql`` and return the rows as column-name dicts.

        Raises:
            ApplicationError: If no connection was configured.
            Exception: Whatever the driver raises, after logging it.
        """
        cursor = self._require_connection("query").cursor()
        try:
            cursor.execute(sql, params)
            columns = [column[0] for column in cursor.description or ()]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        except Exception as e:
            error = InfrastructureError(
                code=ErrorCode.QUERY_FAILED,
                message=f"Query failed: {e!s}",
                context=ErrorContext(
                    operation="query",
                    additional_data={"sql": sql},
                ),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error)
            raise
        finally:
            cursor.close()

    def query(
        self,
        sql: str,
        params: Params = (),
        ttl: int | None = None,
        tags: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Return all rows of ``sql``, served from the cache when possible."""
        return self.cache_query(
            sql,
            params,
            lambda: self._fetch_all(sql, params),
            ttl,
            tags,
        )

    def query_row(
        self,
        sql: str,
        params: Params = (),
        ttl: int | None = None,
        tags: Iterable[str] | None = None,
    ) -> dict[str, Any] | None:
        """First row of ``sql`` or None."""
        rows = self.query(sql, params, ttl, tags)
        return rows[0] if rows else None

    def query_value(
        self,
        sql: str,
        params: Params = (),
        ttl: int | None = None,
        tags: Iterable[str] | None = None,
    ) -> Any:
        """First column of the first row of ``sql`` or None."""
        row = self.query_row(sql, params, ttl, tags)
        if not row:
            return None
        return next(iter(row.values()))

    def batch_insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        batch_size: int = Cache.BATCH_INSERT_SIZE,
    ) -> int:
        """Insert ``rows`` into ``table`` in one transaction, then invalidate it.

        Rows are sent in chunks of ``batch_size`` with ``executemany``. Every
        row must have the columns of the first row. On success the
        transaction is committed and every cached query tagged
        ``table_<table>`` is dropped. On failure the transaction is rolled
        back, nothing is invalidated and the driver's exception propagates.

        Returns:
            Number of rows inserted.

        Raises:
            DomainError: If the table or a column is not a plain identifier,
                the rows disagree on their columns or ``batch_size`` < 1.
            ApplicationError: If no connection was configured.
        """
        if not rows:
            return 0
        if batch_size < 1:
            raise create_validation_error(
                f"batch_size must be >= 1, got {batch_size}",
                field="batch_size",
                operation="batch_insert",
            )

        columns = list(rows[0])
        for name in (table, *columns):
            if not _IDENTIFIER.match(name):
                raise create_validation_error(
                    f"Not a valid SQL identifier: {name!r}",
                    field="table" if name == table else "columns",
                    operation="batch_insert",
                )
        for index, row in enumerate(rows):
            if set(row) != set(columns):
                raise create_validation_error(
                    f"Row {index} does not have the columns {columns}",
                    field="rows",
                    operation="batch_insert",
                )

        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        connection = self._require_connection("batch_insert")
        inserted = 0
        cursor = connection.cursor()
        try:
            for start in range(0, len(rows), batch_size):
                chunk = rows[start : start + batch_size]
                cursor.executemany(sql, [tuple(row[column] for column in columns) for row in chunk])
                inserted += cursor.rowcount if cursor.rowcount >= 0 else len(chunk)
            connection.commit()
        except Exception as e:
            connection.rollback()
            error = InfrastructureError(
                code=ErrorCode.BATCH_INSERT_FAILED,
                message=f"Batch insert into {table} failed: {e!s}",
                context=ErrorContext(
                    operation="batch_insert",
                    additional_data={
                        "table": table,
                        "rows": len(rows),
                        "batch_size": batch_size,
                    },
                ),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error)
            raise
        finally:
            cursor.close()

        invalidated = self.invalidate_table(table)
        logger.info(
            "Inserted %d rows into %s, %d cached queries invalidated",
            inserted,
            table,
            invalidated,
            extra={
                "operation": "batch_insert",
                "result_info": {"table": table, "inserted": inserted, "invalidated": invalidated},
            },
        )
        return inserted

    def invalidate_table(self, table_name: str) -> int:
        return self.manager.invalidate_tag(table_tag(table_name))

    def invalidate_user(self, user_id: int | str) -> int:
        return self.manager.invalidate_tag(user_tag(user_id))
