# ledger/errors.py
from typing import Optional, Sequence, Any


class LedgerError(Exception):
    """Base ledger error."""
    def __init__(self, msg: str = ""):
        super().__init__(msg)
        self.msg = msg

    def __str__(self):
        return self.msg or self.__class__.__name__


class InvalidResponse(LedgerError):
    """Envelope missing the success flag or structurally malformed."""


class UnparsableDate(LedgerError):
    """Date text does not match the order date grammar."""

    def __init__(self, text: str, reason: str = "unrecognized date format"):
        super().__init__(f"{reason}: {text!r}")
        self.text = text


class UnparsableAmount(LedgerError):
    """Currency text is not a whole rupee amount."""

    def __init__(self, text: str, reason: str = "invalid amount"):
        super().__init__(f"{reason}: {text!r}")
        self.text = text


class TransportError(LedgerError):
    """Page request failed before a body could be handed to the decoder."""


class HttpError(TransportError):
    def __init__(self, status: int, message: str, payload: Optional[str] = None):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.payload = payload or ""


class NetworkError(TransportError):
    """Connection, DNS or timeout failure."""


class LedgerIOError(LedgerError):
    """Ledger snapshot could not be read or written."""


class ConfigError(LedgerError):
    """Config or session file unreadable."""


class SyncError(LedgerError):
    """A sync run aborted. Carries the last completed page and the unsaved ledger, if any."""

    def __init__(self, last_page: int, cause: Exception, ledger: Optional[Sequence[Any]] = None):
        super().__init__(f"sync aborted after page {last_page}: {cause}")
        self.last_page = last_page
        self.cause = cause
        self.ledger = list(ledger) if ledger is not None else None


class SyncCancelled(SyncError):
    def __init__(self, last_page: int):
        super().__init__(last_page, LedgerError("cancelled"))
