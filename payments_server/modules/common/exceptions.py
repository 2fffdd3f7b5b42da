"""Error taxonomy shared by the money-movement modules."""

from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base class for errors surfaced to callers.

    ``entity`` carries the current snapshot of the affected record (when one
    exists) so clients can refresh without a second read.
    """

    code = "domain_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        current_state: Optional[str] = None,
        entity: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.current_state = current_state
        self.entity = entity

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.current_state is not None:
            payload["current_state"] = self.current_state
        if self.entity is not None:
            payload["entity"] = self.entity
        return payload


class ValidationError(DomainError):
    code = "validation_error"


class NotFoundError(DomainError):
    code = "not_found"


class InvalidStateTransition(DomainError):
    code = "invalid_state_transition"

    def __init__(self, message: str, *, action: str, current_state: str, **kwargs: Any) -> None:
        super().__init__(message, current_state=current_state, **kwargs)
        self.action = action


class InsufficientBalance(DomainError):
    code = "insufficient_balance"

    def __init__(self, message: str, *, required: int, available: int, **kwargs: Any) -> None:
        kwargs.setdefault("field", "amount")
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["required"] = self.required
        payload["available"] = self.available
        return payload


class DuplicateCodeError(DomainError):
    code = "duplicate_code"


class ExternalGatewayFailure(DomainError):
    code = "gateway_failure"


class ConflictError(DomainError):
    """Idempotency clashes and writes against a stale version."""

    code = "conflict"


class GiftCardExpired(DomainError):
    code = "gift_card_expired"


class GiftCardDisabled(DomainError):
    code = "gift_card_disabled"


class GiftCardExhausted(DomainError):
    code = "gift_card_exhausted"
