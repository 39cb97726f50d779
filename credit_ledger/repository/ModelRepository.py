"""
AI Model Repository
"""

from typing import Optional
from sqlalchemy import select

from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import AIModel


class ModelRepository:
    def __init__(self, db: DatabaseClient):
        self.session_factory = db.session

    async def get_latest_model(self) -> Optional[AIModel]:
        """Newest active model, or None when the catalog is empty"""
        async with self.session_factory() as session:
            statement = (
                select(AIModel)
                .where(AIModel.is_active.is_(True))
                .order_by(AIModel.created_at.desc())
                .limit(1)
            )
            result = await session.execute(statement)
            return result.scalar_one_or_none()
