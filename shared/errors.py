"""
Error taxonomy shared by every service.

Every failure raised by the order core is scoped to the single user action
that triggered it. Nothing here is retried automatically; the HTTP layer maps
each class to a status code (see ``main.py``) and the client decides whether
to offer a retry.
"""
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError


class CoreError(Exception):
    """Base class for failures surfaced to the user."""

    code = "core_error"
    status_code = 500
    retryable = False

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail, "retryable": self.retryable}


class ValidationError(CoreError):
    code = "validation_error"
    status_code = 422


class Unauthorized(CoreError):
    code = "unauthorized"
    status_code = 403


class NotFound(CoreError):
    code = "not_found"
    status_code = 404


class InvalidTransition(CoreError):
    """No edge matches, or the order moved underneath us. Refetch and retry."""

    code = "invalid_transition"
    status_code = 409
    retryable = True


class StoreError(CoreError):
    code = "store_error"
    status_code = 503
    retryable = True


class NetworkError(StoreError):
    code = "network_error"


class ProofUploadFailed(StoreError):
    code = "proof_upload_failed"


class RateLimited(CoreError):
    code = "rate_limited"
    status_code = 429
    retryable = True


class UploadOrphan(CoreError):
    """The proof blob is stored but the order update did not commit."""

    code = "upload_orphan"
    status_code = 502
    retryable = True

    def __init__(self, detail: str, proof_url: str):
        super().__init__(detail)
        self.proof_url = proof_url

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["proof_url"] = self.proof_url
        return body


@contextmanager
def store_call(operation: str):
    """Translate backend failures raised inside the block into StoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StoreError(f"{operation} failed: {e.__class__.__name__}") from e
