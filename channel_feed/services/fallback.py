"""Named fallback strategies composed with a first-success combinator."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from channel_feed.config.logging_config import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """One step of a fallback chain.

    ``attempt`` returns a value on success and None for absence. Recoverable
    failures are handled inside the strategy; anything it raises propagates.
    """

    name: str
    attempt: Callable[[], T | None]


@dataclass(frozen=True)
class StrategyResult(Generic[T]):
    name: str
    value: T


def first_success(strategies: Sequence[Strategy[T]]) -> StrategyResult[T] | None:
    """Run strategies in order and return the first non-None value."""

    for strategy in strategies:
        value = strategy.attempt()
        if value is not None:
            return StrategyResult(name=strategy.name, value=value)
        logger.debug("fallback_strategy_absent", strategy=strategy.name)
    return None


__all__ = ["Strategy", "StrategyResult", "first_success"]
