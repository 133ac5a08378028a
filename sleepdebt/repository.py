"""Sleep entry repository: all DB access for logged sleep intervals."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sleepdebt.domain.orm import SleepEntryModel


class SleepEntryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, record: dict[str, Any]) -> SleepEntryModel | None:
        """Insert a sleep entry. Returns None if the same interval is already logged."""
        stmt = (
            pg_insert(SleepEntryModel)
            .values(record)
            .on_conflict_do_nothing(constraint="uq_sleep_entries_user_interval")
            .returning(SleepEntryModel)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> list[SleepEntryModel]:
        """All entries for a user, newest first."""
        query = (
            select(SleepEntryModel)
            .where(SleepEntryModel.user_id == user_id)
            .order_by(SleepEntryModel.start_time.desc(), SleepEntryModel.id.desc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_overlapping(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[SleepEntryModel]:
        """Entries with any part inside [start, end), oldest first.

        Selecting on overlap rather than on start_time keeps the night that
        began before the window opened.
        """
        query = (
            select(SleepEntryModel)
            .where(SleepEntryModel.user_id == user_id)
            .where(SleepEntryModel.end_time > start)
            .where(SleepEntryModel.start_time < end)
            .order_by(SleepEntryModel.start_time.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def delete(self, user_id: str, entry_id: UUID) -> bool:
        stmt = delete(SleepEntryModel).where(
            SleepEntryModel.user_id == user_id,
            SleepEntryModel.id == entry_id,
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
