import asyncio

import pytest
from bson import ObjectId

from app.db.users import InvalidUserId, StoreFailure, UserNotFound, parse_user_id
from app.models.schemas import User, UserPayload
from app.observability.metrics import get_metrics


def test_parse_user_id_round_trips_hex() -> None:
    oid = ObjectId()
    assert parse_user_id(str(oid)) == oid
    assert str(parse_user_id(str(oid))) == str(oid)


@pytest.mark.parametrize("value", ["", "abc", "g" * 24, None, 12])
def test_parse_user_id_rejects_malformed_values(value) -> None:
    with pytest.raises(InvalidUserId):
        parse_user_id(value)


async def test_insert_then_find(gateway) -> None:
    oid = await gateway.insert(UserPayload(name="Grace", email="grace@example.com"))
    user = await gateway.find_by_id(oid)
    assert user == User(id=str(oid), name="Grace", email="grace@example.com")


async def test_find_missing_raises_not_found(gateway) -> None:
    with pytest.raises(UserNotFound):
        await gateway.find_by_id(ObjectId())


async def test_replace_and_delete_report_counts(gateway) -> None:
    oid = await gateway.insert(UserPayload(name="a", email="b"))

    assert await gateway.replace_fields(oid, "c", "d") == 1
    assert await gateway.replace_fields(ObjectId(), "c", "d") == 0
    assert (await gateway.find_by_id(oid)).name == "c"

    assert await gateway.delete(oid) == 1
    assert await gateway.delete(oid) == 0


async def test_driver_errors_become_store_failure(gateway, collection) -> None:
    collection.break_store()
    with pytest.raises(StoreFailure):
        await gateway.insert(UserPayload(name="a", email="b"))
    with pytest.raises(StoreFailure):
        await gateway.find_by_id(ObjectId())
    with pytest.raises(StoreFailure):
        await gateway.replace_fields(ObjectId(), "a", "b")
    with pytest.raises(StoreFailure):
        await gateway.delete(ObjectId())


async def test_store_calls_are_counted(gateway, collection) -> None:
    await gateway.insert(UserPayload(name="a", email="b"))
    collection.break_store()
    with pytest.raises(StoreFailure):
        await gateway.delete(ObjectId())

    counters = get_metrics().snapshot()["counters"]
    assert counters["store_calls_total"] == 2
    assert counters["store_errors_total"] == 1


async def test_cancellation_reaches_the_store_call(gateway, collection) -> None:
    started = asyncio.Event()

    async def slow_find_one(flt):
        started.set()
        await asyncio.sleep(10)

    collection.find_one = slow_find_one
    task = asyncio.create_task(gateway.find_by_id(ObjectId()))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def test_user_wire_form_omits_unset_id() -> None:
    assert User(name="n", email="e").to_wire() == {"name": "n", "email": "e"}
    assert User(id="abc", name="", email="").to_wire() == {"id": "abc", "name": "", "email": ""}
