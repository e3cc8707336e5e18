"""SQLAlchemy-backed record store.

Every call runs in its own transaction. Unique-constraint violations are
surfaced as DuplicateRecordError so callers can treat "insert rejected" as
"already exists"; any other database failure becomes StoreUnavailableError.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gamebridge.db.base import Base
from gamebridge.db.models import (
    AchievementDefinition,
    EnterpriseLeaderboardSnapshot,
    GamificationProfile,
    OnboardingProgress,
    PointLedger,
    Redemption,
    Reward,
    UserAchievement,
)
from gamebridge.errors import DuplicateRecordError, NotFoundError, StoreUnavailableError
from gamebridge.store import base as collections
from gamebridge.store.base import Record, RecordStore, split_filter_key

logger = structlog.get_logger()

COLLECTIONS: dict[str, type[Base]] = {
    collections.PROFILES: GamificationProfile,
    collections.LEDGER: PointLedger,
    collections.ACHIEVEMENTS: AchievementDefinition,
    collections.USER_ACHIEVEMENTS: UserAchievement,
    collections.ONBOARDING_PROGRESS: OnboardingProgress,
    collections.ENTERPRISE_LEADERBOARD: EnterpriseLeaderboardSnapshot,
    collections.REWARDS: Reward,
    collections.REDEMPTIONS: Redemption,
}


def _model(collection: str) -> type[Base]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}") from None


def _column(model: type[Base], field: str) -> Any:
    if field not in model.__table__.columns:
        raise ValueError(f"Unknown field {field!r} on {model.__tablename__}")
    return getattr(model, field)


def _conditions(model: type[Base], filters: Mapping[str, Any] | None) -> list[Any]:
    conditions = []
    for key, value in (filters or {}).items():
        field, op = split_filter_key(key)
        column = _column(model, field)
        if op == "eq":
            conditions.append(column.is_(None) if value is None else column == value)
        elif op == "ne":
            conditions.append(column.is_not(None) if value is None else column != value)
        elif op == "gt":
            conditions.append(column > value)
        elif op == "gte":
            conditions.append(column >= value)
        elif op == "lt":
            conditions.append(column < value)
        elif op == "lte":
            conditions.append(column <= value)
        elif op == "in":
            conditions.append(column.in_(list(value)))
    return conditions


def _ordering(model: type[Base], order_by: Sequence[str]) -> list[Any]:
    clauses = []
    for field in order_by:
        descending = field.startswith("-")
        column = _column(model, field.lstrip("-"))
        clauses.append(column.desc() if descending else column.asc())
    # Deterministic tie-break on insertion order
    clauses.append(model.id.asc())  # type: ignore[attr-defined]
    return clauses


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(obj: Base) -> Record:
    return {c.key: _as_utc(getattr(obj, c.key)) for c in obj.__table__.columns}


def _unavailable(operation: str, collection: str) -> StoreUnavailableError:
    logger.error("store_operation_failed", operation=operation, collection=collection, exc_info=True)
    return StoreUnavailableError(f"{operation} {collection} failed")


class SqlRecordStore(RecordStore):
    """Record store over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def query(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Record]:
        model = _model(collection)
        stmt = select(model).where(*_conditions(model, filters)).order_by(*_ordering(model, order_by))
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [_to_record(obj) for obj in result.scalars()]
        except SQLAlchemyError as exc:
            raise _unavailable("query", collection) from exc

    async def get(self, collection: str, record_id: int) -> Record | None:
        model = _model(collection)
        try:
            async with self._session_factory() as session:
                obj = await session.get(model, record_id)
                return _to_record(obj) if obj is not None else None
        except SQLAlchemyError as exc:
            raise _unavailable("get", collection) from exc

    async def insert(self, collection: str, record: Mapping[str, Any]) -> int:
        model = _model(collection)
        obj = model(**record)
        try:
            async with self._session_factory.begin() as session:
                session.add(obj)
                await session.flush()
                return obj.id  # type: ignore[attr-defined]
        except IntegrityError as exc:
            logger.debug("store_duplicate_rejected", collection=collection)
            raise DuplicateRecordError(collection, dict(record)) from exc
        except SQLAlchemyError as exc:
            raise _unavailable("insert", collection) from exc

    async def update(self, collection: str, record_id: int, values: Mapping[str, Any]) -> None:
        model = _model(collection)
        for field in values:
            _column(model, field)
        stmt = update(model).where(model.id == record_id).values(**values)  # type: ignore[attr-defined]
        await self._execute_update(collection, record_id, stmt)

    async def increment(
        self,
        collection: str,
        record_id: int,
        deltas: Mapping[str, int],
        values: Mapping[str, Any] | None = None,
    ) -> None:
        model = _model(collection)
        assignments: dict[str, Any] = {}
        for field, delta in deltas.items():
            assignments[field] = _column(model, field) + delta
        for field, value in (values or {}).items():
            _column(model, field)
            assignments[field] = value
        if not assignments:
            return
        stmt = update(model).where(model.id == record_id).values(**assignments)  # type: ignore[attr-defined]
        await self._execute_update(collection, record_id, stmt)

    async def increment_where(
        self,
        collection: str,
        record_id: int,
        deltas: Mapping[str, int],
        guard: Mapping[str, Any],
    ) -> bool:
        model = _model(collection)
        assignments = {field: _column(model, field) + delta for field, delta in deltas.items()}
        stmt = (
            update(model)
            .where(model.id == record_id, *_conditions(model, guard))  # type: ignore[attr-defined]
            .values(**assignments)
        )
        try:
            async with self._session_factory.begin() as session:
                result = await session.execute(stmt)
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise _unavailable("update", collection) from exc

    async def count(self, collection: str, filters: Mapping[str, Any] | None = None) -> int:
        model = _model(collection)
        stmt = select(func.count()).select_from(model).where(*_conditions(model, filters))
        try:
            async with self._session_factory() as session:
                return int((await session.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            raise _unavailable("count", collection) from exc

    async def _execute_update(self, collection: str, record_id: int, stmt: Any) -> None:
        try:
            async with self._session_factory.begin() as session:
                result = await session.execute(stmt)
                matched = result.rowcount
        except IntegrityError as exc:
            raise DuplicateRecordError(collection) from exc
        except SQLAlchemyError as exc:
            raise _unavailable("update", collection) from exc
        if matched == 0:
            raise NotFoundError(collection, record_id)
