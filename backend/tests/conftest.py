"""Shared test fixtures and configuration for backend tests.

Every test runs against its own configuration: a temporary upload
directory, an in-memory catalog, a fake content store and a fake chat
provider. The app lifespan is never entered, so nothing talks to a real
external service.
"""
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from docchat.ai_provider import ChatProvider, set_chat_provider
from docchat.config import AppConfig, DatabaseSettings, UploadSettings, set_config
from docchat.content_store import ContentStore, StoredContent, set_content_store
from docchat.main import app
from docchat.storage import CatalogService

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeContentStore(ContentStore):
    """Records uploads; raises ``fail_with`` when set."""

    def __init__(self) -> None:
        self.uploads: List[Tuple[Path, str]] = []
        self.fail_with: Optional[Exception] = None

    @property
    def name(self) -> str:
        return "fake"

    async def upload(self, path: Path, mime_type: str) -> StoredContent:
        if self.fail_with is not None:
            raise self.fail_with
        self.uploads.append((Path(path), mime_type))
        number = len(self.uploads)
        return StoredContent(
            uri=f"https://store.test/files/{number}",
            mime_type=mime_type,
            name=f"files/{number}",
        )


class FakeChatProvider(ChatProvider):
    """Yields ``chunks`` in order, then raises ``error`` if set.

    ``before_stream`` is called when the model call starts, which lets tests
    observe what was stored before it.
    """

    name = "fake"

    def __init__(self, chunks: Optional[List[str]] = None, error: Optional[Exception] = None) -> None:
        super().__init__("fake-model")
        self.chunks = list(chunks) if chunks is not None else ["Hel", "lo", " world"]
        self.error = error
        self.before_stream: Optional[Callable[[], None]] = None
        self.calls: List[Dict] = []

    async def stream_chat(self, messages, system=None, max_tokens=4096):
        self.calls.append({"messages": list(messages), "system": system, "max_tokens": max_tokens})
        if self.before_stream is not None:
            self.before_stream()
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


@pytest.fixture(autouse=True)
def app_config(tmp_path):
    """Install a per-test configuration and reset the catalog singleton."""
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    config = AppConfig(
        uploads=UploadSettings(upload_dir=str(upload_dir)),
        database=DatabaseSettings(path=":memory:"),
    )
    set_config(config)
    CatalogService.reset_instance()

    yield config

    CatalogService.reset_instance()
    set_content_store(None)
    set_chat_provider(None)
    set_config(None)


@pytest.fixture
def upload_dir(app_config) -> Path:
    return Path(app_config.uploads.upload_dir)


@pytest.fixture
def catalog(app_config) -> CatalogService:
    """The catalog instance the routers use."""
    return CatalogService.get_instance(app_config.database.path)


@pytest.fixture(autouse=True)
def content_store(app_config) -> FakeContentStore:
    store = FakeContentStore()
    set_content_store(store)
    return store


@pytest.fixture(autouse=True)
def chat_provider(app_config) -> FakeChatProvider:
    provider = FakeChatProvider()
    set_chat_provider(provider)
    return provider


@pytest.fixture
def api_client(app_config):
    """TestClient for the main app, authenticated as USER_ID."""
    return TestClient(app, headers={app_config.auth.user_header: USER_ID})


@pytest.fixture
def anonymous_client():
    """TestClient without a caller identity header."""
    return TestClient(app)


@pytest.fixture
def multipart_body():
    """Build a raw multipart/form-data body.

    Each part is ``(headers, payload)`` where headers is a list of raw header
    lines. Returns ``(body, content_type)``.
    """
    def build(parts, boundary: str = "docchat-test-boundary"):
        body = b""
        for headers, payload in parts:
            body += f"--{boundary}\r\n".encode()
            for line in headers:
                body += line.encode("utf-8") + b"\r\n"
            body += b"\r\n" + payload + b"\r\n"
        body += f"--{boundary}--\r\n".encode()
        return body, f"multipart/form-data; boundary={boundary}"

    return build


async def chunked(data: bytes, size: int = 1024):
    """Async byte source yielding ``data`` in ``size``-byte chunks."""
    for start in range(0, len(data), size):
        yield data[start:start + size]


@pytest.fixture
def byte_source():
    """Factory for async byte sources: ``byte_source(data, size=1024)``."""
    return chunked


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def other_user_id() -> str:
    return OTHER_USER_ID
