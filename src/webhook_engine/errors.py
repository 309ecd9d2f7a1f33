"""Error taxonomy shared by the inbound and outbound paths.

Every inbound error carries the stable ``code`` and HTTP ``status_code`` the
boundary responds with. Messages are safe to return to the caller; anything
more specific stays in server-side logs.
"""

from typing import Any


class WebhookError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class VerificationError(WebhookError):
    code = "WEBHOOK_VERIFICATION_FAILED"
    status_code = 401
    default_message = "Webhook signature verification failed"


class PayloadError(WebhookError):
    code = "WEBHOOK_PAYLOAD_INVALID"
    status_code = 400
    default_message = "Webhook payload is invalid"

    def __init__(
        self,
        message: str | None = None,
        *,
        event_type: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.event_type = event_type
        self.details = details or []


class InternalError(WebhookError):
    pass


class HandlerNotFoundError(InternalError):
    def __init__(self, event_type: str) -> None:
        super().__init__()
        self.event_type = event_type


class HandlerTimeoutError(WebhookError):
    code = "WEBHOOK_PROCESSING_TIMEOUT"
    status_code = 503
    default_message = "Webhook processing timed out, retry later"


class DuplicateExternalIdError(Exception):
    def __init__(self, table: str, external_id: str) -> None:
        super().__init__(f"{table} with external_id={external_id} already exists")
        self.table = table
        self.external_id = external_id


class DeliveryError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
