from concurrent.futures import ThreadPoolExecutor

import pytest

from blossom_server.errors import StorageError
from blossom_server.repository import BlobRepository, compute_digest

OWNER_A = "aa" * 32
OWNER_B = "bb" * 32


@pytest.fixture
def repository(tmp_path):
    repo = BlobRepository(str(tmp_path / "blobs.db"))
    repo.init()
    return repo


def insert(repository, data, owner, now=1_700_000_000):
    return repository.insert_if_absent(
        digest=compute_digest(data),
        owner=owner,
        data=data,
        mime_type="application/octet-stream",
        size=len(data),
        now=now,
    )


def test_compute_digest_is_deterministic():
    assert compute_digest(b"hello world") == "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"
    assert compute_digest(b"hello world") == compute_digest(b"hello world")
    assert compute_digest(b"hello world") != compute_digest(b"hello world!")


def test_insert_and_get(repository):
    record = insert(repository, b"payload", OWNER_A)

    stored = repository.get(record.digest)

    assert stored.owner == OWNER_A
    assert stored.size == 7
    assert stored.created == 1_700_000_000
    assert stored.payload == b"payload"


def test_get_without_payload(repository):
    record = insert(repository, b"payload", OWNER_A)

    assert repository.get(record.digest, with_payload=False).payload is None


def test_get_unknown_digest_returns_none(repository):
    assert repository.get(compute_digest(b"missing")) is None


def test_insert_if_absent_keeps_first_owner(repository):
    first = insert(repository, b"same bytes", OWNER_A, now=100)
    second = insert(repository, b"same bytes", OWNER_B, now=200)

    assert second == first
    assert second.owner == OWNER_A
    assert second.created == 100
    assert repository.count() == 1


def test_concurrent_identical_inserts_create_one_row(repository):
    owners = [f"{i:02x}" * 32 for i in range(16)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        records = list(pool.map(lambda owner: insert(repository, b"contended", owner), owners))

    assert repository.count() == 1
    assert len({record.owner for record in records}) == 1
    assert records[0].owner in owners


def test_list_by_owner(repository):
    insert(repository, b"one", OWNER_A, now=1)
    insert(repository, b"two", OWNER_A, now=2)
    insert(repository, b"three", OWNER_B, now=3)

    records = repository.list_by_owner(OWNER_A)

    assert [record.digest for record in records] == [compute_digest(b"one"), compute_digest(b"two")]
    assert all(record.payload is None for record in records)
    assert repository.list_by_owner("cc" * 32) == []


def test_delete(repository):
    record = insert(repository, b"doomed", OWNER_A)

    assert repository.delete(record.digest) is True
    assert repository.get(record.digest) is None
    assert repository.delete(record.digest) is False


def test_storage_failures_raise_storage_error(tmp_path):
    repo = BlobRepository(str(tmp_path))

    with pytest.raises(StorageError):
        repo.init()


def test_queries_before_init_raise_storage_error(tmp_path):
    repo = BlobRepository(str(tmp_path / "empty.db"))

    with pytest.raises(StorageError):
        repo.get(compute_digest(b"x"))
