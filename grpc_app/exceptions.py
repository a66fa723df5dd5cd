from __future__ import annotations

from typing import Optional


class ServerError(Exception):
    """Base class for RPC server scaffold failures."""


class BindError(ServerError):
    """The listening socket could not be acquired."""

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to listen on {address}: {reason}")


class ServerStateError(ServerError):
    """An operation was attempted in a lifecycle state that does not allow it."""

    def __init__(self, operation: str, state: Optional[str] = None) -> None:
        self.operation = operation
        self.state = state
        msg = f"cannot {operation}"
        if state:
            msg = f"{msg} in state {state}"
        super().__init__(msg)
