# Overview: Thin typed facade over the authoritative store's row CRUD.

"""
RemoteStore exposes the table-style primitives the engine relies on:
ordered listing, equality filters, insert returning the stored row, and
update/delete by id. Rows cross this boundary as dicts (``to_dict()``).

Failure mapping:
- transport-level problems (connection refused, timeouts, dropped
  connections) -> NetworkUnavailable
- anything else the backend rejects (constraints, bad values) -> RemoteRejected

The session is rolled back on every failure so the next call starts clean.
Callers only reach this facade when the connectivity probe says online.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError

from ..errors import NetworkUnavailable, RemoteRejected
from ..extensions import db
from ..models import Product, Transaction, TransactionItem

logger = logging.getLogger(__name__)

TABLES = {
    "products": Product,
    "transactions": Transaction,
    "transaction_items": TransactionItem,
}

_TRANSPORT_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


def run_remote(session, description: str, func, *, write: bool = False):
    """Run ``func`` against ``session``, committing writes and mapping failures."""
    try:
        result = func()
        if write:
            session.commit()
        return result
    except _TRANSPORT_ERRORS as exc:
        session.rollback()
        logger.warning("Remote store unreachable during %s: %s", description, exc)
        raise NetworkUnavailable("Remote store is unreachable") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Remote store rejected %s: %s", description, exc)
        raise RemoteRejected(f"Remote store rejected {description}") from exc


class RemoteStore:
    def __init__(self, session=None) -> None:
        # Defaults to the Flask-SQLAlchemy scoped session; tests may inject one
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise RemoteRejected(f"Unknown table: {table}")

    def _run(self, description: str, func, *, write: bool = False):
        return run_remote(self.session, description, func, write=write)

    # -- reads -------------------------------------------------------------

    def select(
        self,
        table: str,
        *,
        filters: dict | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        """
        Equality-filtered listing. A list/tuple/set filter value matches any
        of its members.
        """
        model = self._model(table)

        def _op():
            query = self.session.query(model)
            for column, value in (filters or {}).items():
                attr = getattr(model, column)
                if isinstance(value, (list, tuple, set)):
                    query = query.filter(attr.in_(list(value)))
                else:
                    query = query.filter(attr == value)
            if order_by:
                attr = getattr(model, order_by)
                # id as tiebreaker so equal timestamps still list deterministically
                query = query.order_by(attr.desc() if descending else attr.asc(), model.id.asc())
            return [row.to_dict() for row in query.all()]

        return self._run(f"select on {table}", _op)

    def get(self, table: str, row_id: str) -> dict | None:
        model = self._model(table)

        def _op():
            row = self.session.get(model, row_id)
            return row.to_dict() if row else None

        return self._run(f"get on {table}", _op)

    # -- writes ------------------------------------------------------------

    def insert(self, table: str, values: dict) -> dict:
        """Insert one row and return the stored row."""
        model = self._model(table)

        def _op():
            row = model(**values)
            self.session.add(row)
            self.session.flush()
            return row

        row = self._run(f"insert into {table}", _op, write=True)
        return row.to_dict()

    def insert_many(self, table: str, rows: list[dict]) -> list[dict]:
        """Insert several rows in one statement batch; all or nothing."""
        model = self._model(table)

        def _op():
            objs = [model(**values) for values in rows]
            self.session.add_all(objs)
            self.session.flush()
            return objs

        objs = self._run(f"insert into {table}", _op, write=True)
        return [obj.to_dict() for obj in objs]

    def update(self, table: str, row_id: str, patch: dict) -> dict:
        """Update one row by id and return the stored row."""
        model = self._model(table)

        def _op():
            row = self.session.get(model, row_id)
            if row is None:
                return None
            for key, value in patch.items():
                setattr(row, key, value)
            self.session.flush()
            return row

        row = self._run(f"update on {table}", _op, write=True)
        if row is None:
            raise RemoteRejected(f"No {table} row with id {row_id}")
        return row.to_dict()

    def delete(self, table: str, row_id: str) -> bool:
        """Delete one row by id. Returns False when no row matched."""
        model = self._model(table)

        def _op():
            return self.session.query(model).filter(model.id == row_id).delete(
                synchronize_session=False
            )

        deleted = self._run(f"delete on {table}", _op, write=True)
        return bool(deleted)
