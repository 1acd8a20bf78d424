"""
External collaborators.

Only the contracts live here; the OCR model and the remote store are
supplied by the host application.
"""

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from ..models import (
    ExtractionHint,
    PendingAction,
    RosterMember,
    TransactionLogEntry,
)


@runtime_checkable
class TitheExtractor(Protocol):
    """
    Turns one ledger photograph into rows.

    The return value is raw payload: a list of row mappings or a mapping
    with an "entries" list. Raising, or returning an unusable payload,
    skips that file only.
    """

    async def extract(
        self,
        image: bytes,
        hint: Optional[ExtractionHint],
        transaction_log: Sequence[TransactionLogEntry],
        roster: Sequence[RosterMember],
    ) -> Any:
        ...


@runtime_checkable
class SyncTransport(Protocol):
    """
    Applies one queued action remotely.

    Must be safe to retry. Returning False or raising SyncTransportError
    counts as a failure; SyncOfflineError ends the running cycle.
    """

    async def apply(self, action: PendingAction) -> bool:
        ...


__all__ = ["TitheExtractor", "SyncTransport"]
