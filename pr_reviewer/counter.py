"""Calendar-month counter of fixed-and-pushed PRs."""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime

from pr_reviewer.models import EngineState
from pr_reviewer.utils import get_logger


def local_now() -> datetime:
    """Return the current local time."""
    return datetime.now().astimezone()


def month_key_for(moment: datetime) -> str:
    """Return the ``YYYY-MM`` key of ``moment``."""
    return moment.strftime("%Y-%m")


class CompletionTracker:
    """Set of PR numbers counted as fixed in the current calendar month.

    The month key follows the wall clock: every read or write first rotates
    to the current month, clearing the set when the month has changed.

    Access is serialized by one lock. If an operation fails while holding it,
    the tracker is poisoned and degrades to an empty, read-only counter.
    """

    def __init__(self, clock: Callable[[], datetime] = local_now) -> None:
        """Initialize an empty tracker for the current month.

        Args:
            clock: Source of the current local time

        """
        self._clock = clock
        self._lock = threading.Lock()
        self._month_key = month_key_for(clock())
        self._pr_numbers: set[int] = set()
        self._poisoned = False
        self.logger = get_logger()

    @contextmanager
    def _guard(self) -> Iterator[bool]:
        """Hold the lock; yield False when the tracker is poisoned."""
        with self._lock:
            if self._poisoned:
                yield False
                return
            try:
                yield True
            except Exception:
                self._poisoned = True
                self.logger.warning(
                    "Monthly counter failed and is now disabled for this process",
                    exc_info=True,
                )

    @property
    def month_key(self) -> str:
        """Month key the tracker currently counts under."""
        return self._month_key

    @property
    def poisoned(self) -> bool:
        """Whether the tracker has been disabled by a failure."""
        return self._poisoned

    def _rotate_locked(self) -> None:
        now_key = month_key_for(self._clock())
        if now_key != self._month_key:
            self.logger.debug("Monthly counter rotated %s -> %s", self._month_key, now_key)
            self._month_key = now_key
            self._pr_numbers.clear()

    def initialize(self, state: EngineState) -> None:
        """Load the current month's set from ``state``.

        Args:
            state: Engine state holding the per-month mapping

        """
        with self._guard() as usable:
            if not usable:
                return
            self._month_key = month_key_for(self._clock())
            self._pr_numbers = set(
                state.monthly_fixed_pr_numbers_by_month.get(self._month_key, []),
            )

    def rotate_if_needed(self) -> None:
        """Switch to the wall-clock month, clearing the set when it changed."""
        with self._guard() as usable:
            if usable:
                self._rotate_locked()

    def record(self, pr_number: int) -> bool:
        """Count ``pr_number`` for the current month.

        Args:
            pr_number: PR that was fixed and pushed

        Returns:
            True if newly counted, False if already counted this month

        """
        inserted = False
        with self._guard() as usable:
            if usable:
                self._rotate_locked()
                inserted = pr_number not in self._pr_numbers
                self._pr_numbers.add(pr_number)
        return inserted

    def count(self) -> int:
        """Return the number of PRs counted this month."""
        total = 0
        with self._guard() as usable:
            if usable:
                self._rotate_locked()
                total = len(self._pr_numbers)
        return total

    def sync_into(self, state: EngineState) -> None:
        """Write the current month's set into ``state`` (sorted, unique).

        Args:
            state: Engine state to update

        """
        with self._guard() as usable:
            if usable:
                self._rotate_locked()
                state.monthly_fixed_pr_numbers_by_month[self._month_key] = sorted(
                    self._pr_numbers,
                )
