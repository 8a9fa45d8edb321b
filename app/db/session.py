from __future__ import annotations

from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection

from app.config import Settings, get_settings


def create_client(settings: Settings | None = None) -> AsyncMongoClient:
    settings = settings or get_settings()
    # Connects lazily; the first operation surfaces an unreachable server.
    return AsyncMongoClient(settings.mongo_uri, serverSelectionTimeoutMS=settings.mongo_timeout_ms)


def get_users_collection(client: AsyncMongoClient, settings: Settings | None = None) -> AsyncCollection:
    settings = settings or get_settings()
    return client[settings.mongo_database][settings.mongo_collection]
