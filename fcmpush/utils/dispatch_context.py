"""
Dispatch context management using ContextVars.

Tracks the id of the send in progress so every log line emitted while
building, resolving and sending can be correlated.
"""

from __future__ import annotations

import contextvars
import uuid
from typing import Optional

dispatch_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "dispatch_id",
    default=None,
)


def get_dispatch_id() -> Optional[str]:
    """Get current dispatch ID from context."""
    return dispatch_id_var.get()


def set_dispatch_id(dispatch_id: str) -> contextvars.Token[Optional[str]]:
    """Set dispatch ID in context and return the reset token."""
    return dispatch_id_var.set(dispatch_id)


def generate_dispatch_id() -> str:
    """Generate a new unique dispatch ID."""
    return str(uuid.uuid4())


def reset_dispatch_id(token: contextvars.Token[Optional[str]]) -> None:
    """Restore the dispatch ID that was active before set_dispatch_id."""
    dispatch_id_var.reset(token)
