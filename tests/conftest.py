# tests/conftest.py
from __future__ import annotations

import asyncio
import io
import json
import os
import re
import uuid
from collections.abc import Callable, Generator, Iterator
from itertools import count
from typing import Any

import httpx
import pytest
from botocore.exceptions import ClientError
from fastapi import FastAPI
from fastapi.testclient import TestClient
from PIL import Image
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError, LockNotOwnedError
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-moderation-links")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("APP_URL", "https://gallery.test")
os.environ.setdefault("S3_BUCKET_NAME", "pujo-test")
os.environ.setdefault("S3_PUBLIC_BASE_URL", "https://cdn.gallery.test")
os.environ.setdefault("DISCORD_WEBHOOK_URL", "https://discord.test/api/webhooks/1/hook-token")
os.environ.setdefault("NOTIFICATION_RETRY_DELAY_SECONDS", "0")
os.environ.setdefault("TRANSITION_LOCK_WAIT_SECONDS", "0.2")

from pujo_gallery.core.settings import Settings, settings
from pujo_gallery.db.session import Base
from pujo_gallery.main import app as fastapi_app
from pujo_gallery.models import NotificationDeadLetter
from pujo_gallery.schemas.submission import SubmissionForm
from pujo_gallery.services.blobs import BlobGateway, load_blob_config
from pujo_gallery.services.container import GalleryServices
from pujo_gallery.services.dead_letters import DeadLetterLog
from pujo_gallery.services.ingestion import PhotoUpload
from pujo_gallery.services.notifications import NotificationSynchronizer, load_notifier_config
from pujo_gallery.services.store import SubmissionStore
from pujo_gallery.services.tokens import CapabilityTokenService

TEST_DB_URL = "sqlite://"
_LINK_PATTERN = re.compile(r"\((https?://[^)]+)\)")


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio the store uses.

    Operations named in `fail_on` raise a connection error. Taking and
    releasing a transition lock are the operations "lock" and "unlock".
    """

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}
        self.sets: dict[str, set[str]] = {}
        self.fail_on: set[str] = set()
        self.closed = False

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RedisConnectionError(f"redis {operation} unavailable")

    async def get(self, key: str) -> str | None:
        self._check("get")
        return self.values.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._check("set")
        self.values[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        return sum(1 for key in keys if self.values.pop(key, None) is not None)

    async def lpush(self, key: str, *values: str) -> int:
        self._check("lpush")
        queue = self.lists.setdefault(key, [])
        for value in values:
            queue.insert(0, value)
        return len(queue)

    async def lrem(self, key: str, count: int, value: str) -> int:
        self._check("lrem")
        queue = self.lists.get(key, [])
        before = len(queue)
        queue[:] = [item for item in queue if item != value]
        return before - len(queue)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        self._check("lrange")
        queue = self.lists.get(key, [])
        return queue[start:] if stop == -1 else queue[start : stop + 1]

    async def sadd(self, key: str, *members: str) -> int:
        self._check("sadd")
        members_set = self.sets.setdefault(key, set())
        added = len(set(members) - members_set)
        members_set.update(members)
        return added

    async def smembers(self, key: str) -> set[str]:
        self._check("smembers")
        return set(self.sets.get(key, set()))

    def lock(
        self,
        name: str,
        timeout: float | None = None,
        sleep: float = 0.1,
        blocking_timeout: float | None = None,
    ) -> FakeLock:
        return FakeLock(self, name, timeout, sleep, blocking_timeout)

    async def aclose(self) -> None:
        self.closed = True


class FakeLock:
    """Owner-token lock over `FakeRedis.values`, shaped like redis.asyncio.lock.Lock."""

    def __init__(
        self,
        redis: FakeRedis,
        name: str,
        timeout: float | None = None,
        sleep: float = 0.1,
        blocking_timeout: float | None = None,
    ) -> None:
        self.redis = redis
        self.name = name
        self.timeout = timeout
        self.sleep = sleep
        self.blocking_timeout = blocking_timeout
        self.token: str | None = None

    async def acquire(self) -> bool:
        token = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.blocking_timeout or 0)
        while True:
            self.redis._check("lock")
            if self.name not in self.redis.values:
                self.redis.values[self.name] = token
                self.token = token
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.sleep)

    async def release(self) -> None:
        if self.token is None:
            raise LockError("Cannot release an unlocked lock")
        token, self.token = self.token, None
        self.redis._check("unlock")
        if self.redis.values.get(self.name) != token:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        del self.redis.values[self.name]


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls the gateway makes."""

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.fail_put: Callable[[str], bool] = lambda key: False
        self.fail_delete: Callable[[str], bool] = lambda key: False
        self.deleted: list[str] = []
        self.closed = False

    @staticmethod
    def _error(operation: str) -> ClientError:
        return ClientError(
            {"Error": {"Code": "InternalError", "Message": "We encountered an internal error"}},
            operation,
        )

    def put_object(self, **params: Any) -> dict[str, Any]:
        if self.fail_put(params["Key"]):
            raise self._error("PutObject")
        self.objects[params["Key"]] = params
        return {"ETag": '"fake-etag"'}

    def delete_object(self, **params: Any) -> dict[str, Any]:
        if self.fail_delete(params["Key"]):
            raise self._error("DeleteObject")
        self.objects.pop(params["Key"], None)
        self.deleted.append(params["Key"])
        return {}

    def close(self) -> None:
        self.closed = True


class FakeDiscord:
    """Webhook emulator served through `httpx.MockTransport`.

    Set `down_status` to answer every request with that status, or queue
    one-off statuses in `fail_next`.
    """

    def __init__(self) -> None:
        self.messages: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_next: list[int] = []
        self.down_status: int | None = None
        self._ids = count(1_000_000)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down_status is not None:
            return httpx.Response(self.down_status, json={"message": "unavailable"})
        if self.fail_next:
            return httpx.Response(self.fail_next.pop(0), json={"message": "unavailable"})

        if request.method == "POST":
            if request.url.params.get("wait") != "true":
                return httpx.Response(204)
            message_id = str(next(self._ids))
            message = {"id": message_id, **json.loads(request.content)}
            self.messages[message_id] = message
            return httpx.Response(200, json=message)

        message_id = request.url.path.rsplit("/", 1)[-1]
        message = self.messages.get(message_id)
        if message is None:
            return httpx.Response(404, json={"message": "Unknown Message", "code": 10008})
        if request.method == "GET":
            return httpx.Response(200, json=message)
        if request.method == "PATCH":
            message.update(json.loads(request.content))
            return httpx.Response(200, json=message)
        return httpx.Response(405, json={"message": "405: Method Not Allowed"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def only_message(self) -> dict[str, Any]:
        assert len(self.messages) == 1
        return next(iter(self.messages.values()))

    def links(self, message: dict[str, Any]) -> dict[str, str]:
        """Return the action links of a pending card keyed by field name."""
        fields = message["embeds"][0].get("fields", [])
        return {
            field["name"]: _LINK_PATTERN.search(field["value"]).group(1)  # type: ignore[union-attr]
            for field in fields
        }


def make_image(
    size: tuple[int, int] = (400, 300),
    color: tuple[int, ...] = (20, 40, 80),
    image_format: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide the Settings instance the application runs with."""
    return settings


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean dead-letter log.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def dead_letters(session_factory: sessionmaker[Session]) -> DeadLetterLog:
    return DeadLetterLog(session_factory)


@pytest.fixture()
def stored_letters(session_factory: sessionmaker[Session]) -> Callable[[], list[NotificationDeadLetter]]:
    """Return a reader for every dead letter currently stored."""

    def _read() -> list[NotificationDeadLetter]:
        with session_factory() as db:
            return db.query(NotificationDeadLetter).order_by(NotificationDeadLetter.id).all()

    return _read


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture()
def fake_discord() -> FakeDiscord:
    return FakeDiscord()


@pytest.fixture()
def store(fake_redis: FakeRedis, test_settings: Settings) -> SubmissionStore:
    return SubmissionStore(fake_redis, test_settings)


@pytest.fixture()
def blobs(fake_s3: FakeS3Client, test_settings: Settings) -> BlobGateway:
    return BlobGateway(fake_s3, load_blob_config(test_settings))


@pytest.fixture()
def tokens(test_settings: Settings) -> CapabilityTokenService:
    return CapabilityTokenService(test_settings)


@pytest.fixture()
def notifier(
    fake_discord: FakeDiscord,
    dead_letters: DeadLetterLog,
    test_settings: Settings,
) -> NotificationSynchronizer:
    return NotificationSynchronizer(
        load_notifier_config(test_settings),
        client=fake_discord.client(),
        dead_letters=dead_letters,
    )


@pytest.fixture()
def services(
    store: SubmissionStore,
    blobs: BlobGateway,
    tokens: CapabilityTokenService,
    notifier: NotificationSynchronizer,
    test_settings: Settings,
) -> GalleryServices:
    return GalleryServices.from_components(
        store,
        blobs,
        tokens,
        notifier,
        max_upload_bytes=test_settings.max_upload_bytes,
    )


@pytest.fixture()
def image_factory() -> Callable[..., bytes]:
    """Return a helper that encodes a solid-colour test image."""
    return make_image


@pytest.fixture()
def photo() -> PhotoUpload:
    return PhotoUpload(content=make_image(), content_type="image/png", filename="pandal.png")


@pytest.fixture()
def form() -> SubmissionForm:
    return SubmissionForm(
        username="durga_fan",
        email="fan@example.com",
        location="Bagbazar",
        pandal_id="bagbazar-sarbojanin",
        pandal_name="Bagbazar Sarbojanin",
        coordinates=(22.6036, 88.3653),
        image_type="idol",
        reddit_username="u_durga_fan",
    )


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI, services: GalleryServices) -> Iterator[TestClient]:
    app.state.services = services
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.state.services = None
