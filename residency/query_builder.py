"""
Immutable builder for parameterized SELECT statements.
Produces asyncpg-style `$n` placeholders; nothing is executed here.
"""

import re
from typing import Any

_PLACEHOLDER = re.compile(r"\$(\d+)")
_OPERATORS = {"=", "!=", "<>", "<", "<=", ">", ">=", "LIKE", "ILIKE"}


class QueryBuilder:
    """
    Usage:
        builder = QueryBuilder("posts")
        query, params = builder.where("building_id", building_id).order_by_desc("created_at").build()
    """

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.select_fields = "*"
        self.where_conditions: list[str] = []
        self.params: list[Any] = []
        self.order_by_parts: list[str] = []
        self.limit_count: int | None = None
        self.offset_count: int | None = None
        self.lock_clause = ""

    def _clone(self) -> "QueryBuilder":
        new_builder = QueryBuilder(self.table_name)
        new_builder.select_fields = self.select_fields
        new_builder.where_conditions = self.where_conditions.copy()
        new_builder.params = self.params.copy()
        new_builder.order_by_parts = self.order_by_parts.copy()
        new_builder.limit_count = self.limit_count
        new_builder.offset_count = self.offset_count
        new_builder.lock_clause = self.lock_clause
        return new_builder

    def select(self, *fields: str) -> "QueryBuilder":
        """Set the SELECT list; no fields means `*`"""
        new_builder = self._clone()
        new_builder.select_fields = ", ".join(fields) if fields else "*"
        return new_builder

    def where(self, field: str, *args: Any) -> "QueryBuilder":
        """Add an AND-ed WHERE condition.

        Supports where(field, value) with '=' and where(field, operator, value).
        A None value with '=' or '!=' becomes IS NULL / IS NOT NULL.
        """
        if len(args) == 1:
            operator, value = "=", args[0]
        elif len(args) == 2:
            operator, value = args
        else:
            raise TypeError("where() expects (field, value) or (field, operator, value)")
        if operator.upper() not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {operator}")

        new_builder = self._clone()
        if value is None and operator in ("=", "!=", "<>"):
            null_check = "IS NULL" if operator == "=" else "IS NOT NULL"
            new_builder.where_conditions.append(f"{field} {null_check}")
        else:
            new_builder.params.append(value)
            new_builder.where_conditions.append(
                f"{field} {operator} ${len(new_builder.params)}"
            )
        return new_builder

    def where_in(self, field: str, values: list[Any]) -> "QueryBuilder":
        """Add a `field = ANY($n)` condition; an empty list matches nothing"""
        new_builder = self._clone()
        if not values:
            new_builder.where_conditions.append("FALSE")
            return new_builder
        new_builder.params.append(list(values))
        new_builder.where_conditions.append(f"{field} = ANY(${len(new_builder.params)})")
        return new_builder

    def order_by(self, field: str) -> "QueryBuilder":
        """Add ORDER BY ascending. Chain to add multiple fields."""
        new_builder = self._clone()
        new_builder.order_by_parts.append(field)
        return new_builder

    def order_by_desc(self, field: str) -> "QueryBuilder":
        new_builder = self._clone()
        new_builder.order_by_parts.append(f"{field} DESC")
        return new_builder

    def limit(self, count: int) -> "QueryBuilder":
        new_builder = self._clone()
        new_builder.limit_count = count
        return new_builder

    def offset(self, count: int) -> "QueryBuilder":
        new_builder = self._clone()
        new_builder.offset_count = count
        return new_builder

    def paginate(self, page: int, per_page: int = 10) -> "QueryBuilder":
        """
        Set LIMIT/OFFSET for a 1-based page number.

        Raises:
            ValueError: if page or per_page is smaller than 1
        """
        if page < 1:
            raise ValueError("Page number must be 1 or greater")
        if per_page < 1:
            raise ValueError("Per page count must be 1 or greater")
        return self.limit(per_page).offset((page - 1) * per_page)

    def for_update(self) -> "QueryBuilder":
        """Lock the selected rows until the surrounding transaction ends"""
        new_builder = self._clone()
        new_builder.lock_clause = "FOR UPDATE"
        return new_builder

    def build_where(self, param_offset: int = 0) -> tuple[str, list[Any]]:
        """Build only the WHERE clause, shifting placeholders by `param_offset`.

        Used by UPDATE/DELETE statements whose own parameters come first.
        """
        if not self.where_conditions:
            return "", []
        clause = " AND ".join(self.where_conditions)
        if param_offset:
            clause = _PLACEHOLDER.sub(
                lambda m: f"${int(m.group(1)) + param_offset}", clause
            )
        return f" WHERE {clause}", self.params.copy()

    def build(self) -> tuple[str, list[Any]]:
        """Build the final SQL query and parameters"""
        where_clause, params = self.build_where()
        query = f"SELECT {self.select_fields} FROM {self.table_name}{where_clause}"

        if self.order_by_parts:
            query += f" ORDER BY {', '.join(self.order_by_parts)}"
        if self.limit_count is not None:
            query += f" LIMIT {self.limit_count}"
        if self.offset_count is not None:
            query += f" OFFSET {self.offset_count}"
        if self.lock_clause:
            query += f" {self.lock_clause}"

        return query, params

    def to_sql(self) -> str:
        """Return only the SQL query string without parameters"""
        query, _ = self.build()
        return query

    def __str__(self) -> str:
        query, params = self.build()
        return f"Query: {query}\nParams: {params}"
