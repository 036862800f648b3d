from typing import Dict, Optional

from databases import Database


async def has_role(database: Optional[Database], user_id: str, role: str) -> bool:
    if database is None or not user_id:
        return False
    query = """
        SELECT 1 FROM user_roles
        WHERE user_id = CAST(:user_id AS UUID) AND role = :role
        LIMIT 1
    """
    row = await database.fetch_one(query=query, values={"user_id": user_id, "role": role})
    return row is not None


async def usage_counts(database: Optional[Database], table: str) -> Dict[str, int]:
    """Number of logged usage events per event type."""
    if database is None:
        return {}
    query = f"""
        SELECT event_type, COUNT(*) AS total
        FROM {table}
        GROUP BY event_type
        ORDER BY event_type
    """
    rows = await database.fetch_all(query=query)
    return {row["event_type"]: int(row["total"]) for row in rows}
