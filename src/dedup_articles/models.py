"""Data models for content deduplication."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from common.datetime import parse_datetime


class DedupState(str, Enum):
    RESERVED = "reserved"
    COMMITTED = "committed"


class ReserveOutcome(str, Enum):
    """Result of trying to claim a fingerprint."""

    RESERVED = "reserved"
    ALREADY_RESERVED = "already_reserved"
    ALREADY_COMMITTED = "already_committed"


@dataclass(frozen=True)
class Reservation:
    """What `reserve` hands back to the caller.

    `holder` is the exact value written to the store and is only set when the
    claim succeeded. Commit and release compare against it, so each caller
    must keep its own Reservation rather than look one up by fingerprint.
    """
    fingerprint: str
    outcome: ReserveOutcome
    holder: str | None = field(default=None, repr=False)

    @property
    def reserved(self) -> bool:
        return self.outcome is ReserveOutcome.RESERVED


@dataclass(frozen=True)
class DedupEntry:
    """Stored state of one fingerprint.

    `token` identifies the reservation holder so that only the worker that
    reserved a fingerprint can commit or release it.
    """
    fingerprint: str
    reserved_at: datetime
    state: DedupState
    token: str = ""

    def encode(self) -> str:
        return json.dumps(
            {
                "state": self.state.value,
                "reserved_at": self.reserved_at.isoformat(),
                "token": self.token,
            },
            sort_keys=True,
        )

    @classmethod
    def decode(cls, fingerprint: str, value: str) -> DedupEntry:
        data = json.loads(value)
        return cls(
            fingerprint=fingerprint,
            reserved_at=parse_datetime(data.get("reserved_at")),
            state=DedupState(data["state"]),
            token=data.get("token", ""),
        )
