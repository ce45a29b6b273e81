"""
Rider strike tracker -- authoritative consecutive no-show counter.

Keyed by normalised rider email so unregistered riders are tracked too.
Writes are single-statement upserts (``INSERT ... ON CONFLICT DO UPDATE``)
executed on the caller's session, so a no-show and its counter bump commit
or roll back together and concurrent no-shows for one email never lose an
increment.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from .models import RiderMissCountModel
from src.domain.entities import normalize_email

_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class RiderStrikeTracker:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        try:
            return _INSERTS[dialect](RiderMissCountModel)
        except KeyError:
            raise NotImplementedError(
                f"No upsert support for dialect {dialect}"
            ) from None

    async def lookup(self, email: str) -> Optional[int]:
        """Stored count, or ``None`` if the rider has never been tracked."""
        result = await self.session.execute(
            select(RiderMissCountModel.consecutive_misses).where(
                RiderMissCountModel.email == normalize_email(email)
            )
        )
        return result.scalar_one_or_none()

    async def get(self, email: str) -> int:
        return await self.lookup(email) or 0

    async def set(self, email: str, count: int) -> int:
        if count < 0:
            raise ValueError("Strike count cannot be negative")
        stmt = self._insert().values(email=normalize_email(email), consecutive_misses=count)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RiderMissCountModel.email],
            set_={"consecutive_misses": count, "updated_at": func.now()},
        )
        await self.session.execute(stmt)
        return count

    async def reset(self, email: str) -> int:
        return await self.set(email, 0)

    async def increment(self, email: str) -> int:
        """Add one strike and return the new count, in a single statement."""
        stmt = self._insert().values(email=normalize_email(email), consecutive_misses=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RiderMissCountModel.email],
            set_={
                "consecutive_misses": RiderMissCountModel.consecutive_misses + 1,
                "updated_at": func.now(),
            },
        ).returning(RiderMissCountModel.consecutive_misses)
        result = await self.session.execute(stmt)
        return result.scalar_one()
