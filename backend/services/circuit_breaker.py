from datetime import datetime, timedelta
from dataclasses import dataclass, field
from typing import Callable, Optional

from utils.utcnow import utcnow
from utils.logger import get_logger

logger = get_logger("circuit_breaker")


# ==================== Data Classes ====================


@dataclass
class CooldownConfig:
    """Configuration for per-dependency failure cooldowns."""

    cooldown_seconds: int = 30 * 60  # How long to skip a dependency after it fails


@dataclass
class UpstreamErrorMark:
    """Last recorded failure of one upstream dependency."""

    dependency: str  # "weather", "pollen-search", "yellow-sand-search", "summarizer"
    failed_at: datetime
    expires_at: datetime
    reason: str
    failure_count: int = 1  # consecutive failures since the last success
    details: dict = field(default_factory=dict)


# ==================== Upstream Circuit Breaker ====================


class UpstreamCircuitBreaker:
    """
    Per-dependency cooldown breaker.

    Each upstream dependency (weather provider, each search query kind, the
    summarizer) gets its own mark. While a mark is younger than the
    cooldown window, callers skip that dependency instead of issuing a call
    that is known to be failing. Marks are overwritten on every failure and
    simply ignored once stale; a success clears the mark.

    The cooldown length is fixed configuration, not adaptive.
    """

    def __init__(
        self,
        config: Optional[CooldownConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or CooldownConfig()
        self._clock = clock
        self._marks: dict[str, UpstreamErrorMark] = {}

    def record_failure(self, dependency: str, reason: str, details: Optional[dict] = None) -> UpstreamErrorMark:
        """Record (or overwrite) the failure mark for ``dependency``."""
        now = self._clock()
        previous = self._marks.get(dependency)
        mark = UpstreamErrorMark(
            dependency=dependency,
            failed_at=now,
            expires_at=now + timedelta(seconds=self.config.cooldown_seconds),
            reason=reason,
            failure_count=(previous.failure_count + 1) if previous else 1,
            details=details or {},
        )
        self._marks[dependency] = mark

        logger.warning(
            "Upstream dependency failed, cooling down",
            dependency=dependency,
            reason=reason,
            failure_count=mark.failure_count,
            cooldown_seconds=self.config.cooldown_seconds,
        )
        return mark

    def record_success(self, dependency: str) -> None:
        """Clear the failure mark for a dependency that just answered."""
        if self._marks.pop(dependency, None) is not None:
            logger.info("Upstream dependency recovered", dependency=dependency)

    def is_available(self, dependency: str) -> bool:
        """False while ``dependency`` is inside its cooldown window."""
        mark = self._marks.get(dependency)
        if mark is None:
            return True
        return self._clock() >= mark.expires_at

    def remaining_seconds(self, dependency: str) -> float:
        mark = self._marks.get(dependency)
        if mark is None:
            return 0.0
        return max(0.0, (mark.expires_at - self._clock()).total_seconds())

    def get_mark(self, dependency: str) -> Optional[UpstreamErrorMark]:
        return self._marks.get(dependency)

    def for_dependency(self, dependency: str) -> "DependencyBreaker":
        """Bind this breaker to one dependency name."""
        return DependencyBreaker(self, dependency)

    def reset(self) -> None:
        self._marks.clear()

    def get_stats(self) -> dict:
        """Breaker state per dependency that has ever failed."""
        now = self._clock()
        return {
            "cooldown_seconds": self.config.cooldown_seconds,
            "dependencies": {
                name: {
                    "available": now >= mark.expires_at,
                    "reason": mark.reason,
                    "failure_count": mark.failure_count,
                    "failed_at": mark.failed_at.isoformat(),
                    "remaining_seconds": max(0.0, (mark.expires_at - now).total_seconds()),
                }
                for name, mark in self._marks.items()
            },
        }


class DependencyBreaker:
    """View of :class:`UpstreamCircuitBreaker` for a single dependency.

    Upstream clients hold one of these so they can check and report their
    own availability without knowing their dependency name at each call site.
    """

    def __init__(self, breaker: UpstreamCircuitBreaker, dependency: str):
        self._breaker = breaker
        self.dependency = dependency

    def is_available(self) -> bool:
        return self._breaker.is_available(self.dependency)

    def record_failure(self, reason: str, details: Optional[dict] = None) -> UpstreamErrorMark:
        return self._breaker.record_failure(self.dependency, reason, details)

    def record_success(self) -> None:
        self._breaker.record_success(self.dependency)

    def remaining_seconds(self) -> float:
        return self._breaker.remaining_seconds(self.dependency)
