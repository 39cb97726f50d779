"""
Small database helpers shared by the test modules
"""

from decimal import Decimal
from typing import Any, List

from sqlalchemy import func, select, update

from credit_ledger.core.database.client import DatabaseClient
from credit_ledger.core.database.models import Usage

SHOP_NAME = "acme.myshopify.com"
STAFF_EMAIL = "owner@acme.test"


async def add_rows(db: DatabaseClient, *rows: Any) -> List[Any]:
    """Insert ORM rows in one committed transaction"""

    async def work(session):
        session.add_all(rows)
        await session.flush()
        return list(rows)

    return await db.run_serializable(work, "test_add_rows")


async def count_rows(db: DatabaseClient, model) -> int:
    async with db.session() as session:
        return int((await session.execute(select(func.count(model.id)))).scalar_one())


async def set_purchase_credits_used(db: DatabaseClient, purchase_id: str, credits) -> None:
    async def work(session):
        await session.execute(
            update(Usage)
            .where(Usage.credit_purchase_id == purchase_id)
            .values(credits_used=Decimal(str(credits)))
        )

    await db.run_serializable(work, "test_set_credits_used")


async def execute(db: DatabaseClient, statement) -> None:
    """Run one Core statement in a committed transaction"""

    async def work(session):
        await session.execute(statement)

    await db.run_serializable(work, "test_execute")
