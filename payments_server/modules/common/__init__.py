"""Shared building blocks: errors, pagination, clocks, locks and transition tables."""

from .clock import as_utc, utcnow
from .exceptions import (
    ConflictError,
    DomainError,
    DuplicateCodeError,
    ExternalGatewayFailure,
    GiftCardDisabled,
    GiftCardExhausted,
    GiftCardExpired,
    InsufficientBalance,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from .identifiers import business_id, generate_uuid
from .locks import OwnerLockRegistry
from .pagination import Page, PageRequest
from .transitions import TransitionTable

__all__ = [
    "ConflictError",
    "DomainError",
    "DuplicateCodeError",
    "ExternalGatewayFailure",
    "GiftCardDisabled",
    "GiftCardExhausted",
    "GiftCardExpired",
    "InsufficientBalance",
    "InvalidStateTransition",
    "NotFoundError",
    "OwnerLockRegistry",
    "Page",
    "PageRequest",
    "TransitionTable",
    "ValidationError",
    "as_utc",
    "business_id",
    "generate_uuid",
    "utcnow",
]
