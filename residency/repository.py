"""Repository class"""

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel

from residency.database_operations import DatabaseOperations
from residency.entities import BaseEntity
from residency.query_builder import QueryBuilder

T = TypeVar("T", bound=BaseEntity)
U = TypeVar("U", bound=BaseModel)


class Repository(Generic[T, U]):
    """Generic table gateway mapping rows to pydantic entities.

    Fluent methods (`where`, `order_by`, `for_update`, ...) return a new
    repository bound to a new immutable QueryBuilder; execution methods
    (`get`, `first`, `count`, ...) run against the connection held by the
    current `DatabaseManager.transaction()`.

    Besides plain CRUD it offers the atomic primitives the services rely on:
    relative counter updates (`increment`), conflict-tolerant inserts
    (`insert_ignoring_conflict`) and conditional updates/deletes that
    report exactly which rows they touched (`update_matching`,
    `delete_matching`).

    Type Parameters:
        T: Entity type stored in the table
        U: Update model type
    """

    def __init__(
        self,
        entity_class: type[T],
        update_class: type[U],
        table_name: str,
    ):
        if entity_class is None:
            raise ValueError("entity_class is required")
        if update_class is None:
            raise ValueError("update_class is required")
        if not table_name:
            raise ValueError("table_name is required")

        self.entity_class = entity_class
        self.update_class = update_class
        self.table_name = table_name
        self._query_builder: QueryBuilder | None = None

        self._columns = set(entity_class.model_fields.keys())
        self._has_created_at = "created_at" in self._columns
        self._has_updated_at = "updated_at" in self._columns

        self.db_ops = DatabaseOperations()

    def _map_row(self, row: Any) -> T:
        return self.entity_class(**dict(row))

    def _map_rows(self, rows: list[Any]) -> list[T]:
        return [self._map_row(row) for row in rows]

    def _get_or_create_query_builder(self) -> QueryBuilder:
        if self._query_builder is None:
            return QueryBuilder(self.table_name)
        return self._query_builder

    def _clone_with_query_builder(self, query_builder: QueryBuilder):
        """Create a shallow copy of this repository bound to `query_builder`.

        Subclasses keep their type and custom finders on the copy.
        """
        new_repo = object.__new__(type(self))
        new_repo.__dict__.update(self.__dict__)
        new_repo._query_builder = query_builder
        return new_repo

    def _check_column(self, column: str) -> str:
        if column not in self._columns:
            raise ValueError(f"Unknown column '{column}' for table {self.table_name}")
        return column

    def _apply_automatic_fields(
        self, data: dict[str, Any], is_create: bool = True
    ) -> dict[str, Any]:
        """Fill created_at/updated_at when the entity has them"""
        current_time = datetime.now(UTC)

        if is_create:
            if self._has_created_at and data.get("created_at") is None:
                data["created_at"] = current_time
            if self._has_updated_at and data.get("updated_at") is None:
                data["updated_at"] = current_time
        elif self._has_updated_at and data.get("updated_at") is None:
            data["updated_at"] = current_time

        return data

    def _insert_fields(self, entity: T) -> dict[str, Any]:
        fields = self._apply_automatic_fields(entity.model_dump(), is_create=True)
        return {k: v for k, v in fields.items() if k in self._columns}

    # Fluent query methods that return a new repository instance
    def where(self, field: str, *args: Any):
        """Add a WHERE condition: where(field, value) or where(field, operator, value)"""
        return self._clone_with_query_builder(
            self._get_or_create_query_builder().where(field, *args)
        )

    def where_in(self, field: str, values: list[Any]):
        return self._clone_with_query_builder(
            self._get_or_create_query_builder().where_in(field, values)
        )

    def order_by(self, field: str):
        return self._clone_with_query_builder(
            self._get_or_create_query_builder().order_by(field)
        )

    def order_by_desc(self, field: str):
        return self._clone_with_query_builder(
            self._get_or_create_query_builder().order_by_desc(field)
        )

    def limit(self, count: int):
        return self._clone_with_query_builder(
            self._get_or_create_query_builder().limit(count)
        )

    def paginate(self, page: int, per_page: int = 10):
        return self._clone_with_query_builder(
            self._get_or_create_query_builder().paginate(page, per_page)
        )

    def for_update(self):
        """Lock matched rows until the surrounding transaction ends"""
        return self._clone_with_query_builder(
            self._get_or_create_query_builder().for_update()
        )

    # Execution methods for fluent queries
    async def get(self) -> list[T]:
        """Execute the query and return all matching entities"""
        query, params = self._get_or_create_query_builder().build()
        rows = await self.db_ops.fetch_all(query, params)
        return self._map_rows(rows)

    async def first(self) -> T | None:
        """Execute the query and return the first matching entity"""
        query, params = self._get_or_create_query_builder().limit(1).build()
        row = await self.db_ops.fetch_one(query, params)
        return self._map_row(row) if row else None

    async def count(self) -> int:
        count_builder = self._get_or_create_query_builder().select("COUNT(*)")
        count_builder.order_by_parts = []
        query, params = count_builder.build()
        result = await self.db_ops.fetch_value(query, params)
        return result or 0

    async def exists(self) -> bool:
        return await self.count() > 0

    def to_sql(self) -> str:
        """Return the SQL query string for debugging"""
        return self._get_or_create_query_builder().to_sql()

    # CRUD operations
    async def find_by_id(self, entity_id: UUID) -> T | None:
        return await self.where("id", entity_id).first()

    async def create(self, entity: T) -> T:
        """Insert a new entity and return it as stored"""
        fields = self._insert_fields(entity)
        columns = ", ".join(fields.keys())
        placeholders = ", ".join(f"${i + 1}" for i in range(len(fields)))

        row = await self.db_ops.fetch_one(
            f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders}) RETURNING *",
            list(fields.values()),
        )
        return self._map_row(row)

    async def insert_ignoring_conflict(
        self, entity: T, conflict_columns: list[str]
    ) -> T | None:
        """Insert unless a row with the same `conflict_columns` exists.

        Returns the stored entity, or None when the unique constraint turned
        the insert into a no-op (including a concurrent insert that won).
        """
        fields = self._insert_fields(entity)
        columns = ", ".join(fields.keys())
        placeholders = ", ".join(f"${i + 1}" for i in range(len(fields)))
        target = ", ".join(self._check_column(c) for c in conflict_columns)

        row = await self.db_ops.fetch_one(
            f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT ({target}) DO NOTHING RETURNING *",
            list(fields.values()),
        )
        return self._map_row(row) if row else None

    async def update(self, entity_id: UUID, update_data: U) -> T | None:
        """Update entity and return the updated version, None if it does not exist"""
        updated = await self.where("id", entity_id).update_matching(update_data)
        if updated:
            return updated[0]
        if not update_data.model_dump(exclude_unset=True):
            return await self.find_by_id(entity_id)
        return None

    async def update_matching(self, update_data: U) -> list[T]:
        """Apply `update_data` to every row matching the current WHERE conditions.

        The conditions are evaluated by the UPDATE itself, so a guard such as
        `.where("status", "pending")` doubles as a compare-and-set.
        Only explicitly set fields are written.
        """
        builder = self._get_or_create_query_builder()
        if not builder.where_conditions:
            raise ValueError("Cannot update without WHERE conditions")

        update_dict = update_data.model_dump(exclude_unset=True)
        if not update_dict:
            return []
        update_dict = self._apply_automatic_fields(update_dict, is_create=False)

        set_clause = ", ".join(
            f"{self._check_column(k)} = ${i + 1}" for i, k in enumerate(update_dict)
        )
        where_clause, where_params = builder.build_where(param_offset=len(update_dict))

        rows = await self.db_ops.fetch_all(
            f"UPDATE {self.table_name} SET {set_clause}{where_clause} RETURNING *",
            list(update_dict.values()) + where_params,
        )
        return self._map_rows(rows)

    async def increment(
        self, entity_id: UUID, column: str, delta: int = 1, minimum: int = 0
    ) -> T | None:
        """Atomically add `delta` to an integer column, never going below `minimum`.

        The new value is computed by the database from the current row value,
        so concurrent callers never overwrite each other's changes.
        """
        column = self._check_column(column)
        row = await self.db_ops.fetch_one(
            f"UPDATE {self.table_name} SET {column} = GREATEST({column} + $2, $3) "
            "WHERE id = $1 RETURNING *",
            [entity_id, delta, minimum],
        )
        return self._map_row(row) if row else None

    async def delete(self, entity_id: UUID) -> bool:
        """Delete entity by ID"""
        result = await self.db_ops.execute_query(
            f"DELETE FROM {self.table_name} WHERE id = $1", [entity_id]
        )
        return result != "DELETE 0"

    async def delete_matching(self) -> list[T]:
        """Delete every row matching the current WHERE conditions and return them"""
        builder = self._get_or_create_query_builder()
        if not builder.where_conditions:
            raise ValueError("Cannot delete without WHERE conditions")

        where_clause, params = builder.build_where()
        rows = await self.db_ops.fetch_all(
            f"DELETE FROM {self.table_name}{where_clause} RETURNING *", params
        )
        return self._map_rows(rows)
