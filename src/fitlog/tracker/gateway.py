"""Remote data gateway: row-level CRUD over the tracker tables."""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import Table, create_engine, delete, event, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .config import TrackerConfig
from .exceptions import GatewayError
from .schema import GATEWAY_TABLES, Base, new_id, utcnow

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass
class GatewayResult:
    """Outcome of a gateway call: echoed rows or the error that stopped it."""
    data: List[Row] = field(default_factory=list)
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def first(self) -> Optional[Row]:
        return self.data[0] if self.data else None

    def raise_for_error(self) -> "GatewayResult":
        if self.error is not None:
            raise self.error
        return self


class RemoteGateway(ABC):
    """Interface to the hosted relational backend.

    Filters map column names to a scalar (equality) or to a list, tuple or
    set of values (membership). ``order_by`` entries prefixed with ``-`` sort
    descending.
    """

    @abstractmethod
    async def select(self, table: str, filters: Dict[str, Any],
                     order_by: Optional[Sequence[str]] = None) -> GatewayResult:
        """Select rows matching filters."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> GatewayResult:
        """Insert one row; the echoed row carries the server-assigned id."""

    @abstractmethod
    async def update(self, table: str, values: Row, filters: Dict[str, Any]) -> GatewayResult:
        """Update rows matching filters."""

    @abstractmethod
    async def upsert(self, table: str, rows: List[Row], on_conflict: Sequence[str]) -> GatewayResult:
        """Insert rows, updating the existing row when the conflict key matches."""

    @abstractmethod
    async def delete(self, table: str, filters: Dict[str, Any]) -> GatewayResult:
        """Delete rows matching filters; pass a list of ids for a batch delete."""


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SqlGateway(RemoteGateway):
    """SQLAlchemy implementation of the remote gateway.

    Calls run on the event loop thread and complete before the coroutine
    returns, so remote writes still interleave only at await points.
    """

    def __init__(self, database_url: str = "sqlite:///fitlog.db", echo: bool = False):
        self.database_url = database_url
        is_sqlite = database_url.startswith("sqlite")
        connect_args = {'check_same_thread': False, 'timeout': 30} if is_sqlite else {}

        self.engine: Engine = create_engine(
            database_url,
            connect_args=connect_args,
            pool_pre_ping=True,
            echo=echo,
        )
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "SqlGateway":
        """Create a gateway for the configured database."""
        config.ensure_directories()
        return cls(config.database_url, echo=config.echo_sql)

    @contextmanager
    def get_session(self) -> Session:
        """Get database session with automatic commit/rollback."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Close gateway and cleanup connections."""
        self.engine.dispose()

    # ========================================================================================
    # GATEWAY OPERATIONS
    # ========================================================================================

    async def select(self, table: str, filters: Dict[str, Any],
                     order_by: Optional[Sequence[str]] = None) -> GatewayResult:
        def work(session: Session, tbl: Table) -> List[Row]:
            stmt = select(tbl).where(*self._where(tbl, filters))
            for key in order_by or []:
                column = self._column(tbl, key.lstrip('-'))
                stmt = stmt.order_by(column.desc() if key.startswith('-') else column.asc())
            return [dict(m) for m in session.execute(stmt).mappings().all()]

        return self._execute("select", table, work)

    async def insert(self, table: str, row: Row) -> GatewayResult:
        def work(session: Session, tbl: Table) -> List[Row]:
            values = dict(row)
            if 'id' in tbl.c and values.get('id') is None:
                values['id'] = new_id()
            session.execute(insert(tbl).values(**values))
            return self._fetch(session, tbl, {'id': values['id']})

        return self._execute("insert", table, work)

    async def update(self, table: str, values: Row, filters: Dict[str, Any]) -> GatewayResult:
        def work(session: Session, tbl: Table) -> List[Row]:
            self._require_filters("update", table, filters)
            session.execute(update(tbl).where(*self._where(tbl, filters)).values(**self._touch(tbl, values)))
            return self._fetch(session, tbl, filters)

        return self._execute("update", table, work)

    async def upsert(self, table: str, rows: List[Row], on_conflict: Sequence[str]) -> GatewayResult:
        def work(session: Session, tbl: Table) -> List[Row]:
            echoed = []
            for row in rows:
                missing = [c for c in on_conflict if c not in row]
                if missing:
                    raise GatewayError(f"Upsert row lacks conflict columns {missing}",
                                       operation="upsert", table=table)
                key = {c: row[c] for c in on_conflict}
                existing = session.execute(select(tbl).where(*self._where(tbl, key))).first()
                if existing is not None:
                    changes = {k: v for k, v in row.items() if k not in key and k != 'id'}
                    if changes:
                        session.execute(update(tbl).where(*self._where(tbl, key)).values(**self._touch(tbl, changes)))
                else:
                    values = dict(row)
                    if 'id' in tbl.c and values.get('id') is None:
                        values['id'] = new_id()
                    session.execute(insert(tbl).values(**values))
                echoed.extend(self._fetch(session, tbl, key))
            return echoed

        return self._execute("upsert", table, work)

    async def delete(self, table: str, filters: Dict[str, Any]) -> GatewayResult:
        def work(session: Session, tbl: Table) -> List[Row]:
            self._require_filters("delete", table, filters)
            removed = self._fetch(session, tbl, filters)
            session.execute(delete(tbl).where(*self._where(tbl, filters)))
            return removed

        return self._execute("delete", table, work)

    # ========================================================================================
    # HELPERS
    # ========================================================================================

    def _execute(self, operation: str, table: str,
                 work: Callable[[Session, Table], List[Row]]) -> GatewayResult:
        """Run one unit of work, converting failures into a result error."""
        try:
            tbl = self._table(table, operation)
            with self.get_session() as session:
                rows = work(session, tbl)
            logger.debug(f"{operation} {table}: {len(rows)} row(s)")
            return GatewayResult(data=rows)
        except GatewayError as e:
            return GatewayResult(error=e)
        except SQLAlchemyError as e:
            return GatewayResult(error=GatewayError(f"{operation} on {table} failed: {e}",
                                                    operation=operation, table=table))

    def _table(self, name: str, operation: str) -> Table:
        if name not in GATEWAY_TABLES:
            raise GatewayError(f"Unknown table '{name}'", operation=operation, table=name)
        return Base.metadata.tables[name]

    def _column(self, tbl: Table, name: str):
        if name not in tbl.c:
            raise GatewayError(f"Unknown column '{name}' on {tbl.name}", table=tbl.name, column=name)
        return tbl.c[name]

    def _where(self, tbl: Table, filters: Dict[str, Any]) -> list:
        clauses = []
        for name, value in filters.items():
            column = self._column(tbl, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    def _fetch(self, session: Session, tbl: Table, filters: Dict[str, Any]) -> List[Row]:
        stmt = select(tbl).where(*self._where(tbl, filters))
        return [dict(m) for m in session.execute(stmt).mappings().all()]

    def _touch(self, tbl: Table, values: Row) -> Row:
        """Stamp updated_at on tables that carry it."""
        if 'updated_at' in tbl.c and 'updated_at' not in values:
            return {**values, 'updated_at': utcnow()}
        return dict(values)

    def _require_filters(self, operation: str, table: str, filters: Iterable[str]) -> None:
        if not filters:
            raise GatewayError(f"Refusing to {operation} every row of {table}",
                               operation=operation, table=table)
