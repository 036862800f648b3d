import logging
from typing import Optional

from databases import Database

from models import schema_statements

logger = logging.getLogger(__name__)


def create_database(url: Optional[str]) -> Optional[Database]:
    if not url:
        logger.warning("DATABASE_URL is not set; usage logging is disabled")
        return None
    return Database(url)


async def connect(database: Optional[Database], usage_table: str) -> None:
    if database is None:
        return
    await database.connect()
    for statement in schema_statements(usage_table):
        await database.execute(statement)


async def disconnect(database: Optional[Database]) -> None:
    if database is None or not database.is_connected:
        return
    await database.disconnect()
