"""At-most-once admission of article content into enrichment and indexing."""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from common.datetime import utc_now
from common.errors import DedupError, ErrorKind
from dedup_articles.models import DedupEntry, DedupState, Reservation, ReserveOutcome
from dedup_articles.stores import CacheStore

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "newsreader:dedup:"

# A reservation can expire between a failed SET NX and the following GET
_RESERVE_ATTEMPTS = 3


class Deduplicator:
    """Claims content fingerprints in a shared store.

    `reserve` is the only way into the enrich and index stages. A reservation
    carries a TTL so that a crashed worker's claim lapses and the content can
    be processed again. `commit` makes the claim permanent after indexing,
    `release` drops it after a terminal downstream failure. Both take the
    Reservation returned by `reserve` and only act on the exact value it
    wrote, so a claim re-taken by another worker after expiry is never
    clobbered, even when both workers share this instance.
    """

    def __init__(
        self,
        store: CacheStore,
        reservation_ttl: float = 600,
        committed_ttl: float | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable = utc_now,
    ) -> None:
        self.store = store
        self.reservation_ttl = reservation_ttl
        self.committed_ttl = committed_ttl
        self.key_prefix = key_prefix
        self._clock = clock

    def key(self, fingerprint: str) -> str:
        return f"{self.key_prefix}{fingerprint}"

    def reserve(self, fingerprint: str) -> Reservation:
        entry = DedupEntry(
            fingerprint=fingerprint,
            reserved_at=self._clock(),
            state=DedupState.RESERVED,
            token=uuid.uuid4().hex,
        )
        value = entry.encode()
        key = self.key(fingerprint)

        for _ in range(_RESERVE_ATTEMPTS):
            if self.store.set_if_absent(key, value, self.reservation_ttl):
                logger.debug("Reserved fingerprint %s", fingerprint)
                return Reservation(fingerprint, ReserveOutcome.RESERVED, holder=value)

            existing = self.store.get(key)
            if existing is None:
                continue
            if self._decode(fingerprint, existing).state is DedupState.COMMITTED:
                return Reservation(fingerprint, ReserveOutcome.ALREADY_COMMITTED)
            return Reservation(fingerprint, ReserveOutcome.ALREADY_RESERVED)

        raise DedupError(
            f"could not settle reservation for {fingerprint} after {_RESERVE_ATTEMPTS} attempts",
            ErrorKind.TRANSIENT_EXTERNAL,
        )

    def commit(self, reservation: Reservation) -> bool:
        """Mark a reserved fingerprint as committed. Returns False if the claim was lost."""
        fingerprint = reservation.fingerprint
        if not reservation.reserved or reservation.holder is None:
            logger.warning("Commit of %s without a held reservation", fingerprint)
            return False

        reserved = self._decode(fingerprint, reservation.holder)
        committed = DedupEntry(
            fingerprint=fingerprint,
            reserved_at=reserved.reserved_at,
            state=DedupState.COMMITTED,
            token=reserved.token,
        )
        ok = self.store.compare_and_swap(
            self.key(fingerprint), reservation.holder, committed.encode(), self.committed_ttl
        )
        if not ok:
            logger.warning("Reservation for %s expired or was taken over before commit", fingerprint)
        return ok

    def release(self, reservation: Reservation) -> bool:
        """Drop a reservation so the content can be processed again later."""
        fingerprint = reservation.fingerprint
        if not reservation.reserved or reservation.holder is None:
            return False
        ok = self.store.compare_and_delete(self.key(fingerprint), reservation.holder)
        if ok:
            logger.info("Released reservation for %s", fingerprint)
        else:
            logger.warning("Reservation for %s expired or was taken over before release", fingerprint)
        return ok

    def status(self, fingerprint: str) -> DedupEntry | None:
        value = self.store.get(self.key(fingerprint))
        if value is None:
            return None
        return self._decode(fingerprint, value)

    @staticmethod
    def _decode(fingerprint: str, value: str) -> DedupEntry:
        try:
            return DedupEntry.decode(fingerprint, value)
        except (ValueError, KeyError, TypeError) as e:
            raise DedupError(
                f"unreadable dedup entry for {fingerprint}: {value!r}",
                ErrorKind.TERMINAL_CONTENT,
            ) from e
