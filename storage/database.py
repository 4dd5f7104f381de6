"""
Relational store access shared by the source and destination repositories.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import ConfigurationError
from core.normalizer import normalize_row

logger = logging.getLogger(__name__)


class SqlStore:
    """Thin query runner over a SQLAlchemy engine."""

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None, name: str = "database"):
        """
        Args:
            url: SQLAlchemy database URL, ignored when ``engine`` is given
            engine: an already built engine (tests)
            name: label used in log and error messages
        """
        self.name = name
        if engine is None:
            if not url:
                raise ConfigurationError(f"Missing {name} database URL, set it in the config or the environment")
            engine = create_engine(url, echo=False, pool_pre_ping=True)
        self.engine = engine
        logger.debug("Connected to %s database: %s", name, engine.url.render_as_string(hide_password=True))

    def close(self) -> None:
        self.engine.dispose()

    def _statement(self, query: str, expanding: Sequence[str] = ()):
        statement = text(query)
        if expanding:
            statement = statement.bindparams(*[bindparam(name, expanding=True) for name in expanding])
        return statement

    def read_all(self, query: str, params: Optional[Dict[str, Any]] = None, expanding: Sequence[str] = ()) -> List[Dict[str, Any]]:
        """
        Run a query and return its rows as dicts with normalized text values.

        Args:
            query: SQL with ``:name`` parameters
            params: parameter values
            expanding: names of list parameters used with ``IN :name``
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(self._statement(query, expanding), params or {})
                return [normalize_row(dict(row._mapping)) for row in result]
        except SQLAlchemyError as e:
            logger.error("Query failed on %s: %s, error: %s", self.name, " ".join(query.split()), e)
            raise

    def read_one(self, query: str, params: Optional[Dict[str, Any]] = None, expanding: Sequence[str] = ()) -> Optional[Dict[str, Any]]:
        rows = self.read_all(query, params, expanding)
        return rows[0] if rows else None

    def scalar(self, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
        row = self.read_one(query, params)
        if not row:
            return None
        return next(iter(row.values()))

    def execute(self, query: str, params: Optional[Dict[str, Any]] = None, expanding: Sequence[str] = ()) -> int:
        """Run a write statement and return the affected row count."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(self._statement(query, expanding), params or {})
                return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error("Write failed on %s: %s, error: %s", self.name, " ".join(query.split()), e)
            raise

    def insert(self, table: str, data: Dict[str, Any], id_column: Optional[str] = None) -> Any:
        """Insert one row and return its primary key when ``id_column`` is given."""
        columns = list(data.keys())
        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(':' + c for c in columns)})"
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(query), data)
                if not id_column:
                    return None
                new_id = result.lastrowid
                if not new_id:
                    new_id = conn.execute(text(f"SELECT MAX({id_column}) FROM {table}")).scalar()
                return new_id
        except SQLAlchemyError as e:
            logger.error("Insert into %s.%s failed: %s", self.name, table, e)
            raise

    def has_column(self, table: str, column: str) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text(f"SELECT {column} FROM {table} WHERE 1 = 0"))
            return True
        except SQLAlchemyError:
            return False
