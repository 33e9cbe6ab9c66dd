import base64
import binascii
import hashlib
import json
from datetime import datetime, timezone

from coincurve import PrivateKey, PublicKeyXOnly
from pydantic import ValidationError

from blossom_server.errors import AuthError, AuthFailure
from blossom_server.models import AUTH_EVENT_KIND, Action, AuthEvent

AUTH_SCHEME = "Nostr"


def utc_now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def _serialize(pubkey: str, created_at: int, kind: int, tags: list[list[str]], content: str) -> bytes:
    payload = [0, pubkey, created_at, kind, tags, content]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_event_id(event: AuthEvent) -> str:
    serialized = _serialize(event.pubkey, event.created_at, event.kind, event.tags, event.content)
    return hashlib.sha256(serialized).hexdigest()


def verify_signature(event: AuthEvent) -> bool:
    try:
        event_id = bytes.fromhex(event.id)
        sig = bytes.fromhex(event.sig)
        if len(event_id) != 32 or len(sig) != 64:
            return False
        if compute_event_id(event) != event.id.lower():
            return False
        return PublicKeyXOnly(bytes.fromhex(event.pubkey)).verify(sig, event_id)
    except ValueError:
        return False


def sign_event(
    secret: bytes,
    *,
    tags: list[list[str]],
    kind: int = AUTH_EVENT_KIND,
    content: str = "",
    created_at: int | None = None,
) -> AuthEvent:
    key = PrivateKey(secret)
    pubkey = PublicKeyXOnly.from_secret(key.secret).format().hex()
    created_at = utc_now_ts() if created_at is None else created_at
    event_id = hashlib.sha256(_serialize(pubkey, created_at, kind, tags, content)).digest()
    sig = key.sign_schnorr(event_id)
    return AuthEvent(
        id=event_id.hex(),
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tags,
        content=content,
        sig=sig.hex(),
    )


def build_auth_event(
    secret: bytes,
    action: Action,
    expiration: int,
    *,
    size: int | None = None,
    target: str | None = None,
    created_at: int | None = None,
    content: str | None = None,
) -> AuthEvent:
    tags = [["t", action.value], ["expiration", str(expiration)]]
    if size is not None:
        tags.append(["size", str(size)])
    if target is not None:
        tags.append(["x", target])
    if content is None:
        content = f"{action.value} blob"
    return sign_event(secret, tags=tags, content=content, created_at=created_at)


def encode_authorization_header(event: AuthEvent) -> str:
    token = base64.b64encode(event.model_dump_json().encode("utf-8")).decode("ascii")
    return f"{AUTH_SCHEME} {token}"


def parse_authorization_header(header: str | None) -> AuthEvent:
    if header is None or not header.strip():
        raise AuthError(AuthFailure.HEADER_MISSING, "missing Authorization header")

    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != AUTH_SCHEME.lower() or not token.strip():
        raise AuthError(AuthFailure.HEADER_INVALID, "invalid Authorization header")

    try:
        raw = base64.b64decode(token.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AuthError(AuthFailure.BASE64_INVALID, "invalid Auth event: failed base64 decoding") from exc

    try:
        return AuthEvent.model_validate_json(raw)
    except ValidationError as exc:
        raise AuthError(AuthFailure.JSON_INVALID, "invalid Auth event: failed json decoding") from exc


def validate_auth_event(
    event: AuthEvent,
    action: Action,
    *,
    payload_size: int | None = None,
    target: str | None = None,
    now: int | None = None,
) -> str:
    now = utc_now_ts() if now is None else now

    if not verify_signature(event):
        raise AuthError(AuthFailure.SIGNATURE_INVALID, "invalid event signature")

    if event.kind != AUTH_EVENT_KIND:
        raise AuthError(AuthFailure.WRONG_TOKEN_KIND, f"kind must be {AUTH_EVENT_KIND}")

    if event.created_at > now:
        raise AuthError(AuthFailure.NOT_YET_VALID, "created_at must be in the past")

    tag_action = event.tag_value("t")
    if tag_action is None:
        raise AuthError(AuthFailure.ACTION_TAG_MISSING, "t tag must be set")
    if tag_action != action.value:
        raise AuthError(AuthFailure.ACTION_MISMATCH, "action doesn't match")

    expiration = event.tag_value("expiration")
    if expiration is None:
        raise AuthError(AuthFailure.EXPIRATION_TAG_MISSING, "expiration tag must be set")
    try:
        expires_at = int(expiration)
    except ValueError as exc:
        raise AuthError(AuthFailure.EXPIRATION_INVALID, "invalid expiration") from exc
    if expires_at <= now:
        raise AuthError(AuthFailure.TOKEN_EXPIRED, "expiration must be in the future")

    if action == Action.UPLOAD:
        size_value = event.tag_value("size")
        if size_value is None:
            raise AuthError(AuthFailure.SIZE_TAG_MISSING, "size tag must be set")
        try:
            tag_size = int(size_value)
        except ValueError as exc:
            raise AuthError(AuthFailure.SIZE_INVALID, "invalid size") from exc
        if tag_size < 0:
            raise AuthError(AuthFailure.SIZE_INVALID, "invalid size")
        if tag_size != payload_size:
            raise AuthError(AuthFailure.SIZE_MISMATCH, "size doesn't match")

    if action == Action.DELETE:
        tag_target = event.tag_value("x")
        if tag_target is None:
            raise AuthError(AuthFailure.TARGET_TAG_MISSING, "x tag must be set")
        if target is not None and tag_target.lower() != target.lower():
            raise AuthError(AuthFailure.TARGET_MISMATCH, "x tag doesn't match the requested blob")

    return event.pubkey.lower()


def authenticate(
    header: str | None,
    action: Action,
    *,
    payload_size: int | None = None,
    target: str | None = None,
    now: int | None = None,
) -> str:
    event = parse_authorization_header(header)
    return validate_auth_event(event, action, payload_size=payload_size, target=target, now=now)
