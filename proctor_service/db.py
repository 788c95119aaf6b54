# proctor_service/db.py
from motor.motor_asyncio import AsyncIOMotorClient
from .config import settings

_client = None


def get_database():
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(settings.MONGODB_URI, tz_aware=True)
    return _client[settings.DATABASE_NAME]


def get_sessions_collection():
    return get_database()["sessions"]


async def create_indexes(sessions_col):
    # session_id is the document _id; these back listing and stats queries
    await sessions_col.create_index([("started_at", -1)])
    await sessions_col.create_index([("status", 1), ("ended_at", -1)])


def close_client():
    global _client
    if _client is not None:
        _client.close()
        _client = None
