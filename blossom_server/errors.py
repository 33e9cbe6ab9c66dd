from enum import Enum


class AuthFailure(str, Enum):
    HEADER_MISSING = "header_missing"
    HEADER_INVALID = "header_invalid"
    BASE64_INVALID = "base64_invalid"
    JSON_INVALID = "json_invalid"
    SIGNATURE_INVALID = "signature_invalid"
    WRONG_TOKEN_KIND = "wrong_token_kind"
    NOT_YET_VALID = "not_yet_valid"
    ACTION_TAG_MISSING = "action_tag_missing"
    ACTION_MISMATCH = "action_mismatch"
    EXPIRATION_TAG_MISSING = "expiration_tag_missing"
    EXPIRATION_INVALID = "expiration_invalid"
    TOKEN_EXPIRED = "token_expired"
    SIZE_TAG_MISSING = "size_tag_missing"
    SIZE_INVALID = "size_invalid"
    SIZE_MISMATCH = "size_mismatch"
    TARGET_TAG_MISSING = "target_tag_missing"
    TARGET_MISMATCH = "target_mismatch"


class BlossomError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_response(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.reason:
            error["reason"] = self.reason
        return {"error": error}


class AuthError(BlossomError):
    status_code = 401
    code = "unauthorized"

    def __init__(self, failure: AuthFailure, message: str):
        super().__init__(message, reason=failure.value)
        self.failure = failure


class PolicyError(BlossomError):
    status_code = 400
    code = "bad_request"

    MIME_TYPE_NOT_ALLOWED = "mime_type_not_allowed"
    PUBKEY_NOT_ALLOWED = "pubkey_not_allowed"


class ForbiddenError(BlossomError):
    status_code = 403
    code = "forbidden"


class NotFoundError(BlossomError):
    status_code = 404
    code = "not_found"


class PayloadError(BlossomError):
    status_code = 400
    code = "bad_request"


class PayloadTooLargeError(PayloadError):
    status_code = 413
    code = "payload_too_large"


class StorageError(BlossomError):
    status_code = 500
    code = "internal_error"

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": "internal server error"}}
