from typing import Iterable, List, Optional


class FulfillmentError(Exception):
    """Base for every error the pipeline raises on purpose."""

    status_code = 500
    detail = "Server error"

    def __init__(self, detail: Optional[str] = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationFailure(FulfillmentError):
    status_code = 400
    detail = "Invalid payload"


class MissingField(ValidationFailure):
    def __init__(self, fields: Iterable[str]):
        self.fields: List[str] = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class SignatureInvalid(FulfillmentError):
    status_code = 401
    detail = "Invalid signature"


class NotFound(FulfillmentError):
    status_code = 404
    detail = "Not found"


class InvalidToken(NotFound):
    # unknown token on the download path: reported like a spent one
    status_code = 403
    detail = "Invalid or expired token"


class AlreadyConsumed(FulfillmentError):
    status_code = 403
    detail = "Token already used"


class Expired(FulfillmentError):
    status_code = 410
    detail = "Token expired"


class PersistenceFailure(FulfillmentError):
    # transient: safe to retry, every write is idempotent by key
    status_code = 503
    detail = "Processing, please retry"


class UpstreamProviderFailure(FulfillmentError):
    status_code = 502
    detail = "Payment provider unavailable, please try again"
