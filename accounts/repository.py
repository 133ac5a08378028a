"""User repository: all DB access for accounts and sleep goals."""

from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import AccountExistsError
from sleepdebt.domain.orm import UserModel

_UNIQUE_FIELDS = {
    "uq_users_user_id": "user_id",
    "uq_users_email": "email",
}


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_user_id(self, user_id: str) -> UserModel | None:
        result = await self.session.execute(
            select(UserModel).where(UserModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> UserModel | None:
        result = await self.session.execute(select(UserModel).where(UserModel.email == email))
        return result.scalar_one_or_none()

    async def list_all(self) -> list[UserModel]:
        result = await self.session.execute(select(UserModel).order_by(UserModel.created_at))
        return list(result.scalars().all())

    async def create(self, record: dict[str, Any]) -> UserModel:
        """Insert a user. Raises AccountExistsError on a duplicate user_id or email."""
        user = UserModel(**record)
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            constraint = getattr(exc.orig, "constraint_name", "") or str(exc)
            for name, field in _UNIQUE_FIELDS.items():
                if name in constraint:
                    raise AccountExistsError(field) from exc
            raise
        await self.session.refresh(user)
        return user

    async def update_sleep_goal(self, user_id: str, goal_minutes: int) -> UserModel | None:
        stmt = (
            update(UserModel)
            .where(UserModel.user_id == user_id)
            .values(sleep_goal_minutes=goal_minutes)
            .returning(UserModel)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete(self, user_id: str) -> bool:
        """Delete a user; their sleep entries go with them (ON DELETE CASCADE)."""
        result = await self.session.execute(delete(UserModel).where(UserModel.user_id == user_id))
        return result.rowcount == 1
