"""Core data models used across the exporter."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class SyncState(str, enum.Enum):
    """Connection and sync status of the monitored node."""

    DISCONNECTED = "disconnected"
    CONNECTED_UNSYNCED = "connected-unsynced"
    CONNECTED_SYNCED = "connected-synced"

    @classmethod
    def derive(cls, *, connected: bool, synced: bool) -> "SyncState":
        if not connected:
            return cls.DISCONNECTED

        return cls.CONNECTED_SYNCED if synced else cls.CONNECTED_UNSYNCED


@dataclass(frozen=True, slots=True)
class NodeIdentity:
    """Chain resolved from the node plus the reference oracle bound to it."""

    chain: str
    reference_url: str


@dataclass(frozen=True, slots=True)
class BlockSnapshot:
    number: int
    timestamp: datetime | None
    transaction_count: int | None
    gas_limit: int | None


@dataclass(frozen=True, slots=True)
class SyncProgress:
    current_block: int
    highest_block: int
    starting_block: int
    warp_chunks_amount: int
    warp_chunks_processed: int


@dataclass(frozen=True, slots=True)
class PollFailure:
    """A single failed call inside a gather cycle.

    ``node`` is False for calls that did not go to the monitored node (the
    reference oracle), so their transport errors are not read as the node
    going away.
    """

    metric: str
    error: BaseException
    node: bool = True


@dataclass(slots=True)
class PollResult:
    peer_count: int | None = None
    block_number: int | None = None
    gas_price: int | None = None
    hash_rate: int | None = None
    sync_progress: SyncProgress | None = None
    syncing: bool | None = None
    block: BlockSnapshot | None = None
    block_time: float | None = None
    reference_height: int | None = None
    blocks_behind: int | None = None
    failures: list[PollFailure] = field(default_factory=list)

    def add_failure(self, metric: str, error: BaseException, *, node: bool = True) -> None:
        self.failures.append(PollFailure(metric=metric, error=error, node=node))

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True, slots=True)
class RegistrationAttempt:
    attempt_number: int
    outcome: str
    next_retry_delay: float | None
    error: BaseException | None = None


__all__ = [
    "BlockSnapshot",
    "NodeIdentity",
    "PollFailure",
    "PollResult",
    "RegistrationAttempt",
    "SyncProgress",
    "SyncState",
]
