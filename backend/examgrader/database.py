"""
Database connections - MongoDB async (Motor).
The client is created on first use so importing the package never opens a socket.
"""

from motor.motor_asyncio import AsyncIOMotorClient

from .config import settings

_client = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(settings.MONGO_URL)
    return _client


def get_db():
    return get_client()[settings.DB_NAME]


def close_client():
    global _client
    if _client is not None:
        _client.close()
        _client = None
