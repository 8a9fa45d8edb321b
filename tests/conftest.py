from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from types import SimpleNamespace

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from pymongo.errors import ServerSelectionTimeoutError

from app.config import get_settings
from app.db.users import MongoUserGateway
from app.main import app
from app.observability.metrics import reset_metrics
from app.observability.tracing import set_tracer
from app.services.user_dependencies import get_user_gateway


class MockCollection:
    """Async stand-in for a PyMongo collection, supporting the by-_id calls the gateway makes."""

    name = "users"

    def __init__(self) -> None:
        self.docs: dict[ObjectId, dict] = {}
        self.calls: list[str] = []
        self.fail_with: Exception | None = None

    def _record(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_with is not None:
            raise self.fail_with

    async def insert_one(self, document: dict) -> SimpleNamespace:
        self._record("insert_one")
        oid = document.get("_id") or ObjectId()
        self.docs[oid] = {**document, "_id": oid}
        return SimpleNamespace(inserted_id=oid)

    async def find_one(self, flt: dict) -> dict | None:
        self._record("find_one")
        doc = self.docs.get(flt["_id"])
        return dict(doc) if doc else None

    async def update_one(self, flt: dict, update: dict) -> SimpleNamespace:
        self._record("update_one")
        doc = self.docs.get(flt["_id"])
        if doc is None:
            return SimpleNamespace(matched_count=0, modified_count=0)
        doc.update(update["$set"])
        return SimpleNamespace(matched_count=1, modified_count=1)

    async def delete_one(self, flt: dict) -> SimpleNamespace:
        self._record("delete_one")
        removed = self.docs.pop(flt["_id"], None)
        return SimpleNamespace(deleted_count=0 if removed is None else 1)

    def break_store(self) -> None:
        self.fail_with = ServerSelectionTimeoutError("localhost:27017: connection refused")


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("LOG_FILE", "")
    monkeypatch.setenv("ENABLE_METRICS_ENDPOINT", "true")
    get_settings.cache_clear()
    reset_metrics()
    yield
    get_settings.cache_clear()


@pytest.fixture
def span_exporter() -> Iterator[InMemorySpanExporter]:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    set_tracer(provider.get_tracer("tests"))
    yield exporter
    set_tracer(None)
    provider.shutdown()


@pytest.fixture
def collection() -> MockCollection:
    return MockCollection()


@pytest.fixture
def gateway(collection: MockCollection) -> MongoUserGateway:
    return MongoUserGateway(collection)


@pytest.fixture
async def api_client(gateway: MongoUserGateway, span_exporter: InMemorySpanExporter) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[get_user_gateway] = lambda: gateway
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
