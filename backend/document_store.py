"""
Document-style persistence on top of the SQLAlchemy models.

The billing core only talks to this small contract (create/get/update/query/
delete plus conditional increments and transactions), keyed by collection name.
Every call made outside `transaction()` runs and commits in its own session, so
a sequence of calls is a sequence of independent writes.
"""
import enum
import logging
import operator
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, or_, select, update

from exceptions import ConflictError, NotFoundError
from models import COLLECTIONS

logger = logging.getLogger(__name__)

Filter = Tuple[str, str, Any]

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda column, value: column.in_(list(value)),
}


class DocumentStore(ABC):
    """Storage contract consumed by the billing core"""

    @abstractmethod
    async def create(self, collection: str, doc: Dict[str, Any]) -> str: ...

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        conditions: Sequence[Filter] = (),
    ) -> None: ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None: ...

    @abstractmethod
    async def increment(
        self,
        collection: str,
        doc_id: str,
        deltas: Dict[str, Any],
        conditions: Sequence[Filter] = (),
    ) -> None: ...

    @abstractmethod
    def transaction(self): ...


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


class SqlDocumentStore(DocumentStore):
    """
    DocumentStore backed by an async SQLAlchemy session factory.

    A store created by `transaction()` is bound to one session; its calls only
    flush, and the enclosing `transaction()` block commits or rolls back.
    """

    def __init__(self, session_maker, session=None):
        self._session_maker = session_maker
        self._session = session

    # ---------- helpers ----------

    @staticmethod
    def _model(collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection '{collection}'")

    @staticmethod
    def _column(model, field: str):
        column = model.__table__.columns.get(field)
        if column is None:
            raise ValueError(f"Unknown field '{field}' on {model.__tablename__}")
        return getattr(model, field)

    def _values(self, model, doc: Dict[str, Any]) -> Dict[str, Any]:
        values = {}
        for field, value in doc.items():
            self._column(model, field)
            values[field] = _plain(value)
        return values

    def _where(self, model, filters: Iterable[Filter]) -> list:
        clauses = []
        for field, op, value in filters:
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported filter operator '{op}'")
            if op == "in":
                value = [_plain(v) for v in value]
            else:
                value = _plain(value)
            clauses.append(_OPERATORS[op](self._column(model, field), value))
        return clauses

    @staticmethod
    def _to_document(obj) -> Dict[str, Any]:
        return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator:
        if self._session is not None:
            yield self._session
            await self._session.flush()
            return

        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ---------- contract ----------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SqlDocumentStore"]:
        """Run several calls in one database transaction (joins an outer one)"""
        if self._session is not None:
            yield self
            return

        async with self._session_maker() as session:
            async with session.begin():
                yield SqlDocumentStore(self._session_maker, session=session)

    async def create(self, collection: str, doc: Dict[str, Any]) -> str:
        model = self._model(collection)
        async with self._session_scope() as session:
            obj = model(**self._values(model, doc))
            session.add(obj)
            await session.flush()
            doc_id = obj.id
        logger.debug(f"Created {collection}/{doc_id}")
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        model = self._model(collection)
        async with self._session_scope() as session:
            result = await session.execute(
                select(model)
                .where(model.id == doc_id)
                .execution_options(populate_existing=True)
            )
            obj = result.scalar_one_or_none()
            return self._to_document(obj) if obj is not None else None

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        conditions: Sequence[Filter] = (),
    ) -> None:
        """
        Merge `fields` into the document.

        With `conditions` the write is a compare-and-set: when the row no longer
        matches them nothing is written and ConflictError is raised.
        """
        model = self._model(collection)
        async with self._session_scope() as session:
            result = await session.execute(
                update(model)
                .where(model.id == doc_id, *self._where(model, conditions))
                .values(**self._values(model, fields))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if conditions:
                    raise ConflictError(f"Conditional update on {collection}/{doc_id} was not applied")
                raise NotFoundError(f"{collection}/{doc_id} not found")

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        model = self._model(collection)
        stmt = select(model).where(*self._where(model, filters))

        descending = bool(order_by) and order_by.startswith("-")
        if order_by:
            order_column = self._column(model, order_by.lstrip("-"))
        elif "created_at" in model.__table__.columns:
            order_column = model.created_at
        else:
            order_column = model.id

        async with self._session_scope() as session:
            if start_after is not None:
                cursor = await session.get(model, start_after)
                if cursor is None:
                    raise NotFoundError(f"{collection}/{start_after} not found")
                cursor_value = getattr(cursor, order_column.key)
                if descending:
                    stmt = stmt.where(or_(
                        order_column < cursor_value,
                        and_(order_column == cursor_value, model.id < cursor.id),
                    ))
                else:
                    stmt = stmt.where(or_(
                        order_column > cursor_value,
                        and_(order_column == cursor_value, model.id > cursor.id),
                    ))

            if descending:
                stmt = stmt.order_by(order_column.desc(), model.id.desc())
            else:
                stmt = stmt.order_by(order_column, model.id)
            if limit is not None:
                stmt = stmt.limit(limit)

            result = await session.execute(stmt.execution_options(populate_existing=True))
            return [self._to_document(obj) for obj in result.scalars().all()]

    async def delete(self, collection: str, doc_id: str) -> None:
        model = self._model(collection)
        async with self._session_scope() as session:
            result = await session.execute(
                delete(model)
                .where(model.id == doc_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"{collection}/{doc_id} not found")
        logger.debug(f"Deleted {collection}/{doc_id}")

    async def increment(
        self,
        collection: str,
        doc_id: str,
        deltas: Dict[str, Any],
        conditions: Sequence[Filter] = (),
    ) -> None:
        """
        Atomically add each delta to its field in a single UPDATE. Meant for
        integer counters such as stock; money fields go through a
        compare-and-set `update` so the arithmetic stays in Decimal.

        `conditions` are extra filters the row must satisfy at write time; when
        none match (or the id is unknown) nothing is written and ConflictError
        is raised.
        """
        model = self._model(collection)
        values = {}
        for field, delta in deltas.items():
            column = self._column(model, field)
            values[field] = column + delta

        async with self._session_scope() as session:
            result = await session.execute(
                update(model)
                .where(model.id == doc_id, *self._where(model, conditions))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError(f"Conditional update on {collection}/{doc_id} was not applied")
