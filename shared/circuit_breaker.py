"""
Circuit Breaker Pattern Implementation.

Wraps calls to the external collaborators of the booking core (event hub,
reminder notifications) so a dead endpoint fails fast instead of slowing
down every transition and every sweep item.

Circuit breaker states:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is down, requests fail fast without calling the service
- HALF_OPEN: Testing if service recovered, limited requests allowed

Usage:
    from shared.circuit_breaker import call_with_breaker, hub_breaker
    import pybreaker

    try:
        result = await call_with_breaker(hub_breaker, post_event, event)
    except pybreaker.CircuitBreakerError:
        # Circuit is OPEN - hub is down, skip delivery
        return False
"""

import logging
from typing import Any, Callable

import pybreaker

logger = logging.getLogger(__name__)


class CircuitBreakerLogger(pybreaker.CircuitBreakerListener):
    """Log circuit breaker state changes and failures."""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        """Log state transitions."""
        if new_state.name == "open":
            logger.warning(
                f"Circuit breaker '{cb.name}' OPENED - "
                f"service appears down, failing fast for {cb.reset_timeout}s"
            )
        elif new_state.name == "half-open":
            logger.info(
                f"Circuit breaker '{cb.name}' HALF-OPEN - "
                f"testing if service recovered"
            )
        elif new_state.name == "closed":
            logger.info(
                f"Circuit breaker '{cb.name}' CLOSED - "
                f"service recovered, resuming normal operation"
            )
        else:
            logger.info(
                f"Circuit breaker '{cb.name}' state: {old_state.name} -> {new_state.name}"
            )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: Exception) -> None:
        """Log failures that count toward opening the circuit."""
        logger.warning(
            f"Circuit breaker '{cb.name}' recorded failure: {type(exc).__name__}: {exc}"
        )


# Singleton registry of circuit breakers
_breakers: dict[str, pybreaker.CircuitBreaker] = {}
_logger_instance = CircuitBreakerLogger()


def get_circuit_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 30,
    exclude: list[type] | None = None,
) -> pybreaker.CircuitBreaker:
    """
    Get or create a circuit breaker for a service.

    Args:
        name: Unique identifier for the circuit breaker
        fail_max: Number of consecutive failures before opening circuit
        reset_timeout: Seconds before attempting recovery (half-open)
        exclude: Exception types that should NOT count as failures

    Returns:
        CircuitBreaker instance (singleton per name)
    """
    if name not in _breakers:
        _breakers[name] = pybreaker.CircuitBreaker(
            name=name,
            fail_max=fail_max,
            reset_timeout=reset_timeout,
            exclude=exclude or [],
            listeners=[_logger_instance],
        )
        logger.info(
            f"Created circuit breaker '{name}' | "
            f"fail_max={fail_max} | reset_timeout={reset_timeout}s"
        )
    return _breakers[name]


# Event hub - losing an event is acceptable, blocking a transition is not
hub_breaker = get_circuit_breaker(
    name="event_hub",
    fail_max=5,
    reset_timeout=60,
)

# Reminder notifications - a failed reminder is retried on the next sweep
notifications_breaker = get_circuit_breaker(
    name="notifications",
    fail_max=5,
    reset_timeout=60,
)


async def call_with_breaker(
    breaker: pybreaker.CircuitBreaker,
    func: Callable,
    *args,
    **kwargs,
) -> Any:
    """
    Call async function with circuit breaker protection (native asyncio).

    pybreaker's call_async() requires Tornado, so the coroutine is awaited
    here and its outcome is fed back through breaker.call() with synchronous
    stand-ins. That keeps counting, tripping and listener callbacks inside
    pybreaker.

    When the reset timeout has elapsed, the call is the recovery trial: a
    failure reopens the circuit right away, a success leaves it closed.

    Raises:
        pybreaker.CircuitBreakerError: If circuit is open
        Exception: Any exception raised by func
    """
    trial = False
    if breaker.current_state == pybreaker.STATE_OPEN:
        # Raises while the reset timeout is running; afterwards pybreaker
        # passes through half-open and closes on the stand-in's success
        breaker.call(_noop)
        trial = True

    try:
        result = await func(*args, **kwargs)
    except Exception as e:
        _record_failure(breaker, e)
        if trial and breaker.current_state != pybreaker.STATE_OPEN:
            logger.warning(f"Circuit breaker '{breaker.name}' recovery trial failed, reopening")
            breaker.open()
        raise

    if not trial:
        _record_success(breaker)
    return result


def _noop() -> None:
    return None


def _record_success(breaker: pybreaker.CircuitBreaker) -> None:
    """Reset the consecutive failure count after a successful awaited call."""
    # Only while closed: in any other state the stand-in would count as a trial
    if breaker.current_state != pybreaker.STATE_CLOSED:
        return
    try:
        breaker.call(_noop)
    except pybreaker.CircuitBreakerError:
        logger.debug(f"Circuit breaker '{breaker.name}' opened by a concurrent failure")


def _record_failure(breaker: pybreaker.CircuitBreaker, error: Exception) -> None:
    """Count a failure of an awaited call against the breaker."""

    def fail() -> None:
        raise error

    try:
        breaker.call(fail)
    except pybreaker.CircuitBreakerError:
        logger.warning(f"Circuit breaker '{breaker.name}' tripped by {type(error).__name__}")
    except Exception:  # noqa: S110 - the original error is re-raised by the caller
        pass


def get_breaker_status() -> dict[str, dict[str, Any]]:
    """
    Get status of all circuit breakers for monitoring/health checks.

    Returns:
        Dict of {name: {state, fail_counter, reset_timeout}}
    """
    return {
        name: {
            "state": breaker.current_state,
            "fail_counter": breaker.fail_counter,
            "reset_timeout": breaker.reset_timeout,
        }
        for name, breaker in _breakers.items()
    }
