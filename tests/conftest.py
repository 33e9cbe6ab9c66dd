import time

import pytest
from coincurve import PrivateKey, PublicKeyXOnly
from fastapi.testclient import TestClient

from blossom_server.auth import build_auth_event, encode_authorization_header
from blossom_server.config import get_settings
from blossom_server.main import create_app

JPEG_MAGIC = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def make_payload(magic: bytes, size: int) -> bytes:
    return magic + b"\x00" * (size - len(magic))


class Signer:
    def __init__(self):
        self.secret = PrivateKey().secret
        self.pubkey = PublicKeyXOnly.from_secret(self.secret).format().hex()

    def event(self, action, *, expires_in: int = 1000, **kwargs):
        return build_auth_event(self.secret, action, int(time.time()) + expires_in, **kwargs)

    def header(self, action, **kwargs) -> str:
        return encode_authorization_header(self.event(action, **kwargs))


@pytest.fixture
def alice():
    return Signer()


@pytest.fixture
def bob():
    return Signer()


@pytest.fixture
def jpeg_bytes():
    return make_payload(JPEG_MAGIC, 36194)


@pytest.fixture
def build_client(tmp_path, monkeypatch):
    def _build(**overrides: str) -> TestClient:
        monkeypatch.setenv("BLOSSOM_DATABASE_PATH", str(tmp_path / "blobs.db"))
        monkeypatch.setenv("BLOSSOM_BASE_URL", "https://cdn.example.com/")
        monkeypatch.setenv("BLOSSOM_MAX_UPLOAD_SIZE_BYTES", "1000000")
        monkeypatch.setenv("BLOSSOM_LOG_FORMAT", "text")
        for key, value in overrides.items():
            monkeypatch.setenv(f"BLOSSOM_{key.upper()}", value)
        get_settings.cache_clear()
        return TestClient(create_app())

    yield _build
    get_settings.cache_clear()
