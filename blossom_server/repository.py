import hashlib
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass

from blossom_server.errors import StorageError

METADATA_COLUMNS = "digest, owner, mime_type, size, created"


def compute_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class BlobRecord:
    digest: str
    owner: str
    mime_type: str
    size: int
    created: int
    payload: bytes | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "BlobRecord":
        payload = row["payload"] if "payload" in row.keys() else None
        return cls(
            digest=row["digest"],
            owner=row["owner"],
            mime_type=row["mime_type"],
            size=row["size"],
            created=row["created"],
            payload=bytes(payload) if payload is not None else None,
        )


class BlobRepository:
    """Content-addressed blob table keyed by the sha256 digest of the payload."""

    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = db_path
        self.timeout = timeout

    @contextmanager
    def _connect(self):
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise StorageError(f"failed to open blob database: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"blob database operation failed: {exc}") from exc
        finally:
            conn.close()

    def init(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS blobs (
                    digest TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    mime_type TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    created INTEGER NOT NULL,
                    payload BLOB NOT NULL
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS blobs_owner_idx ON blobs(owner)")

    def insert_if_absent(
        self,
        *,
        digest: str,
        owner: str,
        data: bytes,
        mime_type: str,
        size: int,
        now: int,
    ) -> BlobRecord:
        """Store the blob unless ``digest`` is already present; return the stored row either way."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO blobs(digest, owner, mime_type, size, created, payload)
                VALUES(?, ?, ?, ?, ?, ?)
                ON CONFLICT(digest) DO NOTHING
                """,
                (digest, owner, mime_type, size, now, data),
            )
            row = conn.execute(
                f"SELECT {METADATA_COLUMNS} FROM blobs WHERE digest = ?",
                (digest,),
            ).fetchone()
        if row is None:
            raise StorageError(f"blob {digest} missing right after insert")
        return BlobRecord.from_row(row)

    def get(self, digest: str, *, with_payload: bool = True) -> BlobRecord | None:
        columns = f"{METADATA_COLUMNS}, payload" if with_payload else METADATA_COLUMNS
        with self._connect() as conn:
            row = conn.execute(f"SELECT {columns} FROM blobs WHERE digest = ?", (digest,)).fetchone()
        return BlobRecord.from_row(row) if row else None

    def list_by_owner(self, owner: str) -> list[BlobRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {METADATA_COLUMNS}
                FROM blobs
                WHERE owner = ?
                ORDER BY created ASC, digest ASC
                """,
                (owner,),
            ).fetchall()
        return [BlobRecord.from_row(row) for row in rows]

    def delete(self, digest: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM blobs WHERE digest = ?", (digest,))
        return cursor.rowcount > 0

    def count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM blobs").fetchone()[0]
