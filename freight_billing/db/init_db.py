from __future__ import annotations

import logging

from freight_billing.db.models import Base
from freight_billing.db.session import Database

logger = logging.getLogger(__name__)


async def init_db(databases: list[Database]) -> None:
    for database in databases:
        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_initialized", extra={"store": database.name})
