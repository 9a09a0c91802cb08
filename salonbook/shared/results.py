"""Per-item results for batch operations

Batch runners (recurring expansion, no-show and reminder monitors) evaluate each
item into an Ok or Err and fold the results, so one failing item never aborts
the rest of the batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


Result = Union[Ok, Err]


def attempt(fn: Callable[..., T], *args, **kwargs) -> Result:
    """Run one batch item, turning its exception into an Err"""
    try:
        return Ok(fn(*args, **kwargs))
    except Exception as e:
        return Err(e)


@dataclass
class BatchOutcome(Generic[K]):
    succeeded: list = field(default_factory=list)
    failed: list = field(default_factory=list)  # (key, Err) pairs

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


def fold(results: Iterable[tuple[K, Result]]) -> BatchOutcome:
    """Accumulate (key, result) pairs into successes and failures"""
    outcome: BatchOutcome = BatchOutcome()
    for key, result in results:
        if isinstance(result, Ok):
            outcome.succeeded.append(result.value)
        else:
            outcome.failed.append((key, result))
    return outcome

