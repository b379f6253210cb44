"""Typed outcomes for ordered fallback chains (writer, delivery)."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar, Union

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Strategy produced a value; the chain stops here."""

    value: T


@dataclass(frozen=True)
class Fallback:
    """Strategy declined; the chain moves on to the next one."""

    reason: str
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Fail:
    """Terminal failure of the whole chain."""

    reason: str
    attempts: tuple[tuple[str, Fallback], ...] = ()


Outcome = Union[Ok[T], Fallback, Fail]


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """Named step of a fallback chain."""

    name: str
    run: Callable[[], Awaitable[Union[Ok[T], Fallback]]]


@dataclass
class ChainResult(Generic[T]):
    """Final outcome plus every attempt made, in order."""

    outcome: Union[Ok[T], Fail]
    winner: str = ""
    attempts: list[tuple[str, Union[Ok[T], Fallback]]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Ok)

    @property
    def first_fallback(self) -> Fallback | None:
        for _, attempt in self.attempts:
            if isinstance(attempt, Fallback):
                return attempt
        return None


async def run_chain(strategies: Sequence[Strategy[T]]) -> ChainResult[T]:
    """Try strategies in order until one returns ``Ok``."""
    attempts: list[tuple[str, Union[Ok[T], Fallback]]] = []

    for strategy in strategies:
        result = await strategy.run()
        attempts.append((strategy.name, result))
        if isinstance(result, Ok):
            return ChainResult(outcome=result, winner=strategy.name, attempts=attempts)
        logger.debug(f"Strategy {strategy.name} fell back: {result.reason}")

    fallbacks = tuple((name, a) for name, a in attempts if isinstance(a, Fallback))
    reason = fallbacks[-1][1].reason if fallbacks else "no_strategy"
    return ChainResult(outcome=Fail(reason=reason, attempts=fallbacks), attempts=attempts)
