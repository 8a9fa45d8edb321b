from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from app.models.schemas import User, UserPayload
from app.observability.store import instrument_store_call

T = TypeVar("T")


class UserStoreError(Exception):
    """Base class for persistence outcomes the handlers map to responses."""


class InvalidUserId(UserStoreError, ValueError):
    pass


class UserNotFound(UserStoreError):
    pass


class StoreFailure(UserStoreError):
    pass


def parse_user_id(value: str) -> ObjectId:
    """Convert the external hex form of a user id into an ObjectId."""

    # ObjectId(None) would mint a fresh id instead of failing.
    if not isinstance(value, str):
        raise InvalidUserId(f"{value!r} is not a valid ObjectId")
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise InvalidUserId(str(exc)) from exc


def _to_user(doc: dict[str, Any]) -> User:
    return User(id=str(doc["_id"]), name=doc.get("name", ""), email=doc.get("email", ""))


class MongoUserGateway:
    """Create/read/update/delete of user documents by ObjectId.

    Holds no state beyond the collection handle; the driver owns pooling. Every call
    runs in the caller's task, so cancelling the request cancels the store call.
    """

    def __init__(self, collection: AsyncCollection) -> None:
        self.collection = collection

    @property
    def _collection_name(self) -> str:
        return getattr(self.collection, "name", "users")

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await instrument_store_call(operation=operation, collection=self._collection_name, fn=fn)
        except PyMongoError as exc:
            raise StoreFailure(str(exc)) from exc

    async def insert(self, payload: UserPayload) -> ObjectId:
        document = {"name": payload.name, "email": payload.email}
        result = await self._call("insert_one", lambda: self.collection.insert_one(document))
        return result.inserted_id

    async def find_by_id(self, user_id: ObjectId) -> User:
        doc = await self._call("find_one", lambda: self.collection.find_one({"_id": user_id}))
        if doc is None:
            raise UserNotFound(str(user_id))
        return _to_user(doc)

    async def replace_fields(self, user_id: ObjectId, name: str, email: str) -> int:
        update = {"$set": {"name": name, "email": email}}
        result = await self._call("update_one", lambda: self.collection.update_one({"_id": user_id}, update))
        return result.matched_count

    async def delete(self, user_id: ObjectId) -> int:
        result = await self._call("delete_one", lambda: self.collection.delete_one({"_id": user_id}))
        return result.deleted_count
