"""Per-run abort state for upstream quota exhaustion."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..config import settings
from ..exceptions import UpstreamQuotaExhaustedError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_quota_reset(now: datetime) -> datetime:
    """The upstream daily quota resets at the next UTC midnight."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc) + timedelta(days=1)


class RunContext:
    """
    Carries the abort flag through every upstream call of a run.

    Once quota exhaustion is observed, every later call raises immediately
    without touching the network. The flag clears itself after the cooldown
    window or on reset().
    """

    def __init__(
        self,
        cooldown_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        """
        Initialize run context.

        Args:
            cooldown_seconds: Abort window (uses settings if not provided)
            clock: Returns the current aware UTC datetime
        """
        self.cooldown = timedelta(
            seconds=settings.quota_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        )
        self.clock = clock
        self._aborted = False
        self.aborted_at_query: Optional[str] = None
        self.aborted_at: Optional[datetime] = None

    @property
    def aborted(self) -> bool:
        """Whether the run is aborted; auto-clears once the cooldown has passed."""
        if self._aborted and self.aborted_at and self.clock() - self.aborted_at >= self.cooldown:
            logger.info("Quota abort cooldown elapsed, clearing abort flag")
            self.reset()
        return self._aborted

    @property
    def reset_at(self) -> Optional[datetime]:
        if not self.aborted_at:
            return None
        return next_quota_reset(self.aborted_at)

    def abort(self, query: Optional[str] = None):
        """
        Mark the run aborted by upstream quota exhaustion.

        Args:
            query: The query that triggered the exhaustion
        """
        if self._aborted:
            return
        self._aborted = True
        self.aborted_at_query = query
        self.aborted_at = self.clock()
        logger.error(f"Upstream quota exhausted at query '{query}'; aborting remaining calls")

    def reset(self):
        self._aborted = False
        self.aborted_at_query = None
        self.aborted_at = None

    def check(self):
        """
        Raise if the run is aborted.

        Raises:
            UpstreamQuotaExhaustedError: While the abort flag is set
        """
        if self.aborted:
            raise UpstreamQuotaExhaustedError(
                f"YouTube quota exhausted (at query '{self.aborted_at_query}'); "
                f"resets at {self.reset_at.isoformat()}",
                query=self.aborted_at_query,
                reset_at=self.reset_at
            )
