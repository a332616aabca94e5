"""
Circuit breakers for paid or rate-limited collaborators (AI scorer, PageSpeed).

Pattern:
- Count consecutive failures per dependency
- Open after N failures and reject calls until the cooldown passes
- Half-open: let a few trial calls through, close on the first success
"""

import time
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, Dict

from audit_engine.logger import get_logger

logger = get_logger("circuit_breaker")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    cooldown_seconds: int = 60
    half_open_max_calls: int = 3


class CircuitBreaker:
    """Consecutive-failure breaker guarding one external dependency."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at = None
        self.half_open_calls = 0
        self._lock = Lock()

    def _cooldown_left(self) -> float:
        return self.config.cooldown_seconds - (self.clock() - self.opened_at)

    def _trip(self):
        self.state = CircuitState.OPEN
        self.opened_at = self.clock()
        self.half_open_calls = 0

    def can_call(self) -> tuple[bool, str]:
        """Whether a call may go out now, and why.

        Returns:
            Tuple of (allowed, reason)
        """
        with self._lock:
            if self.state == CircuitState.OPEN:
                left = self._cooldown_left()
                if left > 0:
                    return False, f"circuit_open_cooldown_{int(left)}s"
                logger.info(f"{self.name} breaker: cooldown over, trying HALF_OPEN")
                self.state = CircuitState.HALF_OPEN
                self.half_open_calls = 1
                return True, "circuit_half_open"

            if self.state == CircuitState.HALF_OPEN:
                if self.half_open_calls >= self.config.half_open_max_calls:
                    return False, "circuit_half_open_max_calls"
                self.half_open_calls += 1
                return True, "circuit_half_open_testing"

            return True, "circuit_closed"

    def record_success(self):
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info(f"{self.name} breaker: recovered, CLOSED")
            elif self.consecutive_failures:
                logger.info(f"{self.name} breaker: success after {self.consecutive_failures} failure(s)")
            self.state = CircuitState.CLOSED
            self.consecutive_failures = 0
            self.half_open_calls = 0
            self.opened_at = None

    def record_failure(self):
        with self._lock:
            self.consecutive_failures += 1

            if self.state == CircuitState.HALF_OPEN:
                logger.warning(f"{self.name} breaker: trial call failed, reopening")
                self._trip()
            elif self.state == CircuitState.CLOSED and self.consecutive_failures >= self.config.failure_threshold:
                logger.error(
                    f"{self.name} breaker: OPEN after {self.consecutive_failures} failures "
                    f"(cooldown: {self.config.cooldown_seconds}s)"
                )
                self._trip()
            else:
                logger.warning(
                    f"{self.name} breaker: failure {self.consecutive_failures}/{self.config.failure_threshold}"
                )

    def get_status(self) -> dict:
        with self._lock:
            cooldown_left = None
            if self.state == CircuitState.OPEN:
                cooldown_left = max(0, int(self._cooldown_left()))
            return {
                "name": self.name,
                "state": self.state.value,
                "consecutive_failures": self.consecutive_failures,
                "failure_threshold": self.config.failure_threshold,
                "cooldown_seconds": self.config.cooldown_seconds,
                "cooldown_remaining": cooldown_left,
            }


# One breaker per dependency name, shared by every audit in the process
_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = Lock()


def get_circuit_breaker(name: str = "ai_scorer") -> CircuitBreaker:
    with _registry_lock:
        if name not in _breakers:
            _breakers[name] = CircuitBreaker(name)
        return _breakers[name]


def breaker_statuses() -> Dict[str, dict]:
    with _registry_lock:
        breakers = list(_breakers.values())
    return {b.name: b.get_status() for b in breakers}
