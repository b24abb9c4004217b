"""
IP Aggregator for SiteTrace.

Merges the addresses extracted from each resolver into one run-scoped,
deduplicated address set and detects when every resolver has reported.

by BitSpectreLabs
"""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Union

from sitetrace.core.models import AggregationOutcome, ExtractedAddress, RunState
from sitetrace.core.utils import normalize_address

logger = logging.getLogger(__name__)


OutcomeCallback = Callable[[AggregationOutcome], None]


class AggregatorProtocolError(Exception):
    """Raised when record() is called in a way the run cannot accept."""
    pass


class IPAggregator:
    """
    Thread-safe address set for one diagnostic run.

    ``record`` must be called exactly once per configured resolver. The
    last call finalizes the set: ``on_complete`` fires when addresses were
    found, ``on_empty`` when none were. ``cancel`` and ``fail`` are the
    other two terminal transitions. Callbacks run outside the lock.
    """

    def __init__(
        self,
        resolver_count: int,
        on_complete: Optional[OutcomeCallback] = None,
        on_empty: Optional[OutcomeCallback] = None,
        on_cancelled: Optional[OutcomeCallback] = None,
        on_failed: Optional[OutcomeCallback] = None,
    ):
        """
        Initialize aggregator.

        Args:
            resolver_count: Number of resolvers that will report
            on_complete: Called with the outcome when addresses were found
            on_empty: Called with the outcome when no resolver found any
            on_cancelled: Called when the run is stopped
            on_failed: Called on protocol violation or supervisory timeout
        """
        self.on_complete = on_complete
        self.on_empty = on_empty
        self.on_cancelled = on_cancelled
        self.on_failed = on_failed

        self._lock = threading.Lock()
        self._finished = threading.Event()
        self.reset(resolver_count)

    def reset(self, resolver_count: Optional[int] = None) -> None:
        """Start a new run, discarding all addresses and counts."""
        if resolver_count is None:
            resolver_count = self.expected
        if resolver_count < 1:
            raise ValueError("At least one resolver is required")

        with self._lock:
            self.expected = resolver_count
            self._contributions: Dict[int, List[str]] = {}
            self._seen: Dict[str, None] = {}
            self._state = RunState.PENDING
            self._outcome: Optional[AggregationOutcome] = None
            self._finished.clear()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def reported(self) -> int:
        return len(self._contributions)

    @property
    def is_finalized(self) -> bool:
        return self._state in (RunState.COMPLETE, RunState.EMPTY)

    @property
    def addresses(self) -> List[str]:
        """Live snapshot of every address seen so far."""
        with self._lock:
            return list(self._seen)

    @property
    def outcome(self) -> Optional[AggregationOutcome]:
        """Terminal outcome, or None while the run is pending."""
        return self._outcome

    def record(
        self,
        resolver_index: int,
        addresses: Iterable[Union[str, ExtractedAddress]],
    ) -> bool:
        """
        Merge one resolver's addresses into the run.

        Args:
            resolver_index: Index of the reporting resolver
            addresses: Extracted addresses (strings or ExtractedAddress)

        Returns:
            True if this call finalized the run

        Raises:
            AggregatorProtocolError: On a duplicate or out-of-range index,
                or a record after finalization
        """
        keys = []
        for address in addresses:
            value = address.address if isinstance(address, ExtractedAddress) else str(address)
            key = normalize_address(value)
            if key not in keys:
                keys.append(key)

        violation = None
        callback = None
        finalized = False

        with self._lock:
            if self._state is RunState.CANCELLED:
                logger.debug(f"Ignoring record from resolver {resolver_index}: run was cancelled")
                return False

            if self._state is not RunState.PENDING:
                violation = (
                    f"record() from resolver {resolver_index} after run reached "
                    f"'{self._state.value}'"
                )
            elif not 0 <= resolver_index < self.expected:
                violation = (
                    f"resolver index {resolver_index} out of range for "
                    f"{self.expected} configured resolvers"
                )
            elif resolver_index in self._contributions:
                violation = f"resolver {resolver_index} reported twice"

            if violation:
                if self._state is RunState.PENDING:
                    callback = self._terminate(RunState.FAILED, violation)
            else:
                self._contributions[resolver_index] = keys
                for key in keys:
                    self._seen.setdefault(key, None)

                logger.debug(
                    f"Resolver {resolver_index} contributed {len(keys)} addresses "
                    f"({self.reported}/{self.expected} reported)"
                )

                if self.reported == self.expected:
                    callback = self._finalize()
                    finalized = True

        if violation:
            logger.error(f"Aggregator protocol violation: {violation}")
            self._notify(callback)
            raise AggregatorProtocolError(violation)

        self._notify(callback)
        return finalized

    def cancel(self, reason: str = "stopped by user") -> bool:
        """
        Abandon the run without finalizing.

        Returns:
            True if the run moved to cancelled, False if already terminal
        """
        with self._lock:
            if self._state is not RunState.PENDING:
                return False
            callback = self._terminate(RunState.CANCELLED, reason)

        logger.info(f"Aggregation cancelled after {self.reported}/{self.expected} resolvers: {reason}")
        self._notify(callback)
        return True

    def fail(self, reason: str) -> bool:
        """
        Mark the run failed (e.g. supervisory timeout).

        Returns:
            True if the run moved to failed, False if already terminal
        """
        with self._lock:
            if self._state is not RunState.PENDING:
                return False
            callback = self._terminate(RunState.FAILED, reason)

        logger.warning(f"Aggregation failed: {reason}")
        self._notify(callback)
        return True

    def wait(self, timeout: Optional[float] = None) -> Optional[AggregationOutcome]:
        """
        Block until the run reaches a terminal state.

        Returns:
            The outcome, or None if the timeout expired first
        """
        if not self._finished.wait(timeout):
            return None
        return self._outcome

    def _finalize(self):
        """Freeze the address set. Caller holds the lock."""
        ordered: Dict[str, None] = {}
        for index in sorted(self._contributions):
            for key in self._contributions[index]:
                ordered.setdefault(key, None)

        state = RunState.COMPLETE if ordered else RunState.EMPTY
        self._state = state
        self._outcome = AggregationOutcome(
            state=state,
            addresses=tuple(ordered),
            expected=self.expected,
            reported=self.reported,
            reason=None if ordered else "no targets found",
        )
        self._finished.set()

        if state is RunState.COMPLETE:
            logger.info(f"Address set finalized with {len(ordered)} unique addresses")
            return self.on_complete
        logger.info("Address set finalized empty: no targets found")
        return self.on_empty

    def _terminate(self, state: RunState, reason: str):
        """Move to cancelled/failed. Caller holds the lock."""
        self._state = state
        self._outcome = AggregationOutcome(
            state=state,
            expected=self.expected,
            reported=self.reported,
            reason=reason,
        )
        self._finished.set()
        return self.on_cancelled if state is RunState.CANCELLED else self.on_failed

    def _notify(self, callback: Optional[OutcomeCallback]) -> None:
        if callback is not None and self._outcome is not None:
            callback(self._outcome)
