"""Bounded worker pool shared by page listing and README fetching."""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass, field
from typing import Callable, Generic, Sequence, TypeVar

from star_cache.core.errors import InvalidInputError, QuotaExceededError
from star_cache.core.logging import bind, get_logger

logger = get_logger(__name__)

U = TypeVar("U")
R = TypeVar("R")


@dataclass(slots=True)
class UnitFailure(Generic[U]):
    unit: U
    error: BaseException

    @property
    def quota_exceeded(self) -> bool:
        return isinstance(self.error, QuotaExceededError)


@dataclass(slots=True)
class PoolResult(Generic[U, R]):
    """Outcome of one pool run; ``results`` carries no positional order."""

    results: list[R] = field(default_factory=list)
    failures: list[UnitFailure[U]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures


class BoundedPool:
    """Run units of work on a fixed number of threads.

    A failing unit is recorded against that unit only; siblings keep running
    and ``run`` returns once every unit has finished.
    """

    def __init__(self, parallelism: int, name: str = "fetch") -> None:
        if parallelism <= 0:
            raise InvalidInputError(f"parallelism must be positive, got {parallelism}")
        self.parallelism = parallelism
        self.name = name
        self.log = bind(logger, pool=name)

    def run(
        self,
        units: Sequence[U],
        worker: Callable[[U], R],
        label: Callable[[U], str] = repr,
    ) -> PoolResult[U, R]:
        outcome: PoolResult[U, R] = PoolResult()
        if not units:
            return outcome
        workers = min(self.parallelism, len(units))
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"stc-{self.name}",
        ) as executor:
            futures = {executor.submit(worker, unit): unit for unit in units}
            # Results are gathered on the calling thread, so no lock is needed.
            for future in concurrent.futures.as_completed(futures):
                unit = futures[future]
                error = future.exception()
                if error is not None:
                    unit_label = label(unit)
                    self.log.warning(
                        "[%s] %s failed: %s", self.name, unit_label, error, extra={"ctx_unit": unit_label}
                    )
                    outcome.failures.append(UnitFailure(unit=unit, error=error))
                    continue
                outcome.results.append(future.result())
        return outcome


__all__ = ["BoundedPool", "PoolResult", "UnitFailure"]
