"""Fire-and-forget notification collaborator."""

from .dispatcher import NotificationDispatcher, Notifier

__all__ = ["NotificationDispatcher", "Notifier"]
