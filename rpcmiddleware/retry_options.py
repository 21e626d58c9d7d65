"""Options of the retrying client interceptors, and backoff strategies.

Retries are disabled by default. The number of retries has to be raised above
zero, either when the interceptor is created or on a single call, for example
with ``with_max(5)``. The other defaults retry on ``RESOURCE_EXHAUSTED`` and
``UNAVAILABLE``, with a 50 ms linear backoff and 10% jitter.

Durations are given in seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable

from .backoffutils import exponent_base2, jitter_up
from .context import Context
from .status import Code

BackoffFunc = Callable[[int], float]
BackoffFuncContext = Callable[[Context, int], float]

DEFAULT_RETRIABLE_CODES: tuple[Code, ...] = (Code.RESOURCE_EXHAUSTED, Code.UNAVAILABLE)
"""Codes that are safe to retry: quota reached, or the system is briefly unavailable."""


def backoff_linear(wait_between: float) -> BackoffFunc:
    """Wait a fixed ``wait_between`` seconds between calls."""
    return lambda attempt: wait_between


def backoff_linear_with_jitter(wait_between: float, jitter_fraction: float) -> BackoffFunc:
    """Wait about ``wait_between`` seconds, adjusted by up to ``jitter_fraction`` either way."""
    return lambda attempt: jitter_up(wait_between, jitter_fraction)


def backoff_exponential(scalar: float) -> BackoffFunc:
    """Wait ``scalar`` times 2**(attempt-1): 0.1 s grows to 1.6 s by the fifth attempt."""
    return lambda attempt: scalar * exponent_base2(attempt)


def backoff_exponential_with_jitter(scalar: float, jitter_fraction: float) -> BackoffFunc:
    """Exponential backoff like ``backoff_exponential``, with jitter added."""
    return lambda attempt: jitter_up(scalar * exponent_base2(attempt), jitter_fraction)


def _default_backoff(ctx: Context, attempt: int) -> float:
    return backoff_linear_with_jitter(0.05, 0.10)(attempt)


@dataclass(frozen=True)
class RetryOptions:
    """Settings of the retry behaviour; ``max_retries`` of 0 disables retrying."""

    max_retries: int = 0
    per_call_timeout: float = 0.0
    include_header: bool = True
    codes: tuple[Code, ...] = DEFAULT_RETRIABLE_CODES
    backoff_func: BackoffFuncContext = _default_backoff

    def with_call_options(self, call_options: Iterable[CallOption]) -> RetryOptions:
        """Return these options with ``call_options`` applied in order; unchanged when none."""
        options = self
        for call_option in call_options:
            options = call_option.apply(options)
        return options


DEFAULT_OPTIONS = RetryOptions()


@dataclass(frozen=True)
class CallOption:
    """A call option understood by the retry interceptors."""

    apply: Callable[[RetryOptions], RetryOptions]


def filter_call_options(call_options: Iterable[Any]) -> tuple[list[Any], list[CallOption]]:
    """Split call options into those for the transport and those for retrying."""
    transport_options: list[Any] = []
    retry_options: list[CallOption] = []
    for option in call_options:
        if isinstance(option, CallOption):
            retry_options.append(option)
        else:
            transport_options.append(option)
    return transport_options, retry_options


def with_max(max_retries: int) -> CallOption:
    """Set the maximum number of attempts on this call or interceptor."""
    if max_retries < 0:
        raise ValueError(f"max_retries must not be negative: {max_retries}")
    return CallOption(lambda options: replace(options, max_retries=max_retries))


def disable() -> CallOption:
    """Disable retrying on this call or interceptor; the same as ``with_max(0)``."""
    return with_max(0)


def with_backoff(backoff_func: BackoffFunc) -> CallOption:
    """Set the function that gives the wait before each retry."""

    def backoff(ctx: Context, attempt: int) -> float:
        return backoff_func(attempt)

    return CallOption(lambda options: replace(options, backoff_func=backoff))


def with_backoff_context(backoff_func: BackoffFuncContext) -> CallOption:
    """Set the function, given the call's context, that gives the wait before each retry."""
    return CallOption(lambda options: replace(options, backoff_func=backoff_func))


def with_codes(*retry_codes: Code) -> CallOption:
    """Set which codes are retried. Use with care: calls may not be idempotent.

    CANCELED and DEADLINE_EXCEEDED are never retried this way; use
    ``with_per_retry_timeout`` for those.
    """
    codes = tuple(retry_codes)
    return CallOption(lambda options: replace(options, codes=codes))


def with_per_retry_timeout(timeout: float) -> CallOption:
    """Limit each attempt, the first included, to ``timeout`` seconds; 0 turns this off.

    The deadline of the whole call still takes precedence. When this is set,
    deadline errors of single attempts are retried.
    """
    return CallOption(lambda options: replace(options, per_call_timeout=timeout))