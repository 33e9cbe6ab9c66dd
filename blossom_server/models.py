from enum import Enum

from pydantic import BaseModel, Field

AUTH_EVENT_KIND = 24242


class Action(str, Enum):
    UPLOAD = "upload"
    GET = "get"
    HAS = "has"
    LIST = "list"
    DELETE = "delete"


class AuthEvent(BaseModel):
    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""
    sig: str

    def tag_value(self, name: str) -> str | None:
        """Value of the first tag called ``name``; a tag without a value counts as absent."""
        for tag in self.tags:
            if tag and tag[0] == name:
                return tag[1] if len(tag) > 1 else None
        return None


class BlobDescriptor(BaseModel):
    pubkey: str
    hash: str
    url: str
    type: str
    size: int
    created: int


class HealthResponse(BaseModel):
    status: str
    environment: str
