from collections.abc import Collection
from dataclasses import dataclass

import filetype

from blossom_server.config import Settings
from blossom_server.errors import PayloadError, PayloadTooLargeError, PolicyError

DEFAULT_MIME_TYPE = "application/octet-stream"


def classify(data: bytes) -> str:
    if not data:
        return DEFAULT_MIME_TYPE
    return filetype.guess_mime(data) or DEFAULT_MIME_TYPE


def is_type_allowed(mime_type: str, allow_list: Collection[str]) -> bool:
    return not allow_list or mime_type in allow_list


def is_identity_allowed(identity: str, allow_list: Collection[str]) -> bool:
    return not allow_list or identity in allow_list


@dataclass(frozen=True)
class AccessPolicy:
    allowed_pubkeys: frozenset[str] = frozenset()
    allowed_mime_types: frozenset[str] = frozenset()
    min_upload_size_bytes: int = 1
    max_upload_size_bytes: int = 50 * 1024 * 1024

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccessPolicy":
        return cls(
            allowed_pubkeys=frozenset(pk.lower() for pk in settings.whitelisted_pubkeys),
            allowed_mime_types=frozenset(settings.allowed_mime_types),
            min_upload_size_bytes=settings.min_upload_size_bytes,
            max_upload_size_bytes=settings.max_upload_size_bytes,
        )

    def check_payload_size(self, size: int) -> None:
        bounds = f"min_bytes: {self.min_upload_size_bytes}, max_bytes: {self.max_upload_size_bytes}"
        if size == 0:
            raise PayloadError(f"no payload found ({bounds})")
        if size < self.min_upload_size_bytes:
            raise PayloadError(f"payload doesn't fit size range ({bounds})")
        if size > self.max_upload_size_bytes:
            raise PayloadTooLargeError(f"payload doesn't fit size range ({bounds})")

    def check_identity(self, pubkey: str) -> None:
        if not is_identity_allowed(pubkey.lower(), self.allowed_pubkeys):
            raise PolicyError("pubkey is not allowed to use this server", reason=PolicyError.PUBKEY_NOT_ALLOWED)

    def check_mime_type(self, mime_type: str) -> None:
        if not is_type_allowed(mime_type, self.allowed_mime_types):
            raise PolicyError(f"mime type {mime_type} is not allowed", reason=PolicyError.MIME_TYPE_NOT_ALLOWED)
