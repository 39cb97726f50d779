"""
Shop Repository

Tenant and staff-user lookups. The repository opens its own read sessions;
`upsert_associated_user` writes through a serializable transaction.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import Shop, AssociatedUser
from credit_ledger.core.logging import get_logger

logger = get_logger(__name__)

_USER_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "locale",
    "account_owner",
    "collaborator",
    "email_verified",
)


class ShopRepository:
    def __init__(self, db: DatabaseClient):
        self.db = db
        self.session_factory = db.session

    async def find_shop_by_name(self, shop_name: str) -> Optional[Shop]:
        """
        Fetch a shop by its myshopify name.

        Returns:
            The Shop, or None when no such shop exists.
        """
        async with self.session_factory() as session:
            result = await session.execute(select(Shop).where(Shop.shop_name == shop_name))
            return result.scalar_one_or_none()

    async def create_shop(self, shop_name: str, email: Optional[str] = None) -> Shop:
        async def work(session: AsyncSession) -> Shop:
            shop = Shop(shop_name=shop_name, email=email)
            session.add(shop)
            await session.flush()
            return shop

        return await self.db.run_serializable(work, "create_shop")

    async def find_current_associated_users_by_shop(
        self, shop_name: str
    ) -> List[AssociatedUser]:
        """Staff users with a live online session for the shop (may be empty)"""
        async with self.session_factory() as session:
            statement = (
                select(AssociatedUser)
                .join(Shop, AssociatedUser.shop_id == Shop.id)
                .where(Shop.shop_name == shop_name, AssociatedUser.is_active.is_(True))
                .order_by(AssociatedUser.created_at)
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def find_associated_user_by_email(self, email: str) -> Optional[AssociatedUser]:
        """Case-insensitive lookup; the most recently updated match wins"""
        async with self.session_factory() as session:
            statement = (
                select(AssociatedUser)
                .where(func.lower(AssociatedUser.email) == email.strip().lower())
                .order_by(AssociatedUser.updated_at.desc())
                .limit(1)
            )
            result = await session.execute(statement)
            return result.scalar_one_or_none()

    async def upsert_associated_user(
        self, shop_id: str, user_id: str, **fields: Any
    ) -> AssociatedUser:
        """
        Create or update a staff user keyed by the external `user_id`.

        Repeated calls with the same `user_id` update the one row in place
        (including moving it to `shop_id` and re-activating it).
        """
        user_id = str(user_id)
        values: Dict[str, Any] = {k: v for k, v in fields.items() if k in _USER_FIELDS}

        async def work(session: AsyncSession) -> AssociatedUser:
            result = await session.execute(
                select(AssociatedUser).where(AssociatedUser.user_id == user_id)
            )
            user = result.scalar_one_or_none()
            if user is None:
                user = AssociatedUser(shop_id=shop_id, user_id=user_id, is_active=True, **values)
                session.add(user)
            else:
                user.shop_id = shop_id
                user.is_active = True
                for key, value in values.items():
                    setattr(user, key, value)
            await session.flush()
            return user

        user = await self.db.run_serializable(work, "upsert_associated_user")
        logger.info("Associated user upserted", shop_id=shop_id, user_id=user_id)
        return user

    async def deactivate_associated_user(self, user_id: str) -> bool:
        """Mark a user's online session as ended; False when the user is unknown"""

        async def work(session: AsyncSession) -> bool:
            result = await session.execute(
                select(AssociatedUser).where(AssociatedUser.user_id == str(user_id))
            )
            user = result.scalar_one_or_none()
            if user is None:
                return False
            user.is_active = False
            return True

        return await self.db.run_serializable(work, "deactivate_associated_user")

    async def list_active_shops(self) -> List[Shop]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Shop).where(Shop.is_active.is_(True)).order_by(Shop.shop_name)
            )
            return list(result.scalars().all())
