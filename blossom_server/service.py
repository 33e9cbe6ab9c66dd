import logging
from datetime import datetime, timezone

from blossom_server.errors import ForbiddenError, NotFoundError
from blossom_server.models import BlobDescriptor
from blossom_server.policy import AccessPolicy, classify
from blossom_server.repository import BlobRecord, BlobRepository, compute_digest

logger = logging.getLogger(__name__)


class BlobService:
    """Blob operations for callers whose auth event has already been validated."""

    def __init__(self, repository: BlobRepository, policy: AccessPolicy, base_url: str):
        self.repository = repository
        self.policy = policy
        self.base_url = base_url.rstrip("/")

    def describe(self, record: BlobRecord) -> BlobDescriptor:
        return BlobDescriptor(
            pubkey=record.owner,
            hash=record.digest,
            url=f"{self.base_url}/{record.digest}",
            type=record.mime_type,
            size=record.size,
            created=record.created,
        )

    def upload(self, data: bytes, owner: str) -> BlobDescriptor:
        self.policy.check_identity(owner)

        mime_type = classify(data)
        self.policy.check_mime_type(mime_type)

        digest = compute_digest(data)
        existing = self.repository.get(digest, with_payload=False)
        if existing is not None:
            logger.info("blob already stored", extra={"digest": digest, "pubkey": owner})
            return self.describe(existing)

        record = self.repository.insert_if_absent(
            digest=digest,
            owner=owner,
            data=data,
            mime_type=mime_type,
            size=len(data),
            now=int(datetime.now(timezone.utc).timestamp()),
        )
        logger.info(
            "blob stored",
            extra={"digest": digest, "pubkey": record.owner, "mime_type": mime_type, "size": record.size},
        )
        return self.describe(record)

    def fetch(self, digest: str) -> BlobRecord:
        record = self.repository.get(digest.lower())
        if record is None:
            raise NotFoundError("file not found")
        return record

    def has(self, digest: str) -> BlobRecord:
        record = self.repository.get(digest.lower(), with_payload=False)
        if record is None:
            raise NotFoundError("file not found")
        return record

    def delete(self, digest: str, requester: str) -> BlobDescriptor:
        self.policy.check_identity(requester)

        digest = digest.lower()
        record = self.repository.get(digest, with_payload=False)
        if record is None:
            raise NotFoundError("file not found")
        if record.owner != requester.lower():
            raise ForbiddenError("only the blob owner can delete it")

        if not self.repository.delete(digest):
            raise NotFoundError("file not found")
        logger.info("blob deleted", extra={"digest": digest, "pubkey": requester})
        return self.describe(record)

    def list_by_owner(self, pubkey: str) -> list[BlobDescriptor]:
        return [self.describe(record) for record in self.repository.list_by_owner(pubkey.lower())]
