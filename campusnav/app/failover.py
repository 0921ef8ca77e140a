"""First-success-wins over an ordered list of candidate endpoints.

Used by the survey-data fetch (several Overpass mirrors) and by the
outdoor router (one or more OSRM providers). Each candidate is tried at
most once; there is no backoff and no retry against the same candidate.
"""

import logging
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Sequence, Tuple, Type, TypeVar

from .errors import DataFetchFailure

log = logging.getLogger(__name__)

C = TypeVar("C")
R = TypeVar("R")


def first_success(
    candidates: Sequence[C],
    attempt: Callable[[C], R],
    *,
    dataset: str,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    failure: Type[DataFetchFailure] = DataFetchFailure,
    parallel: bool = False,
) -> R:
    """Return the result of the first candidate whose `attempt` succeeds.

    Sequential mode walks `candidates` in priority order. Parallel mode
    submits every candidate at once and returns the first result to
    complete successfully; candidates still queued are cancelled.
    Exceptions outside `retry_on` propagate immediately. When every
    candidate fails, `failure(dataset, errors)` is raised.
    """
    if not candidates:
        raise failure(dataset, ["no candidates configured"])
    if parallel and len(candidates) > 1:
        return _first_success_parallel(candidates, attempt, dataset, retry_on, failure)

    errors = []
    for candidate in candidates:
        try:
            return attempt(candidate)
        except retry_on as e:
            log.warning("%s: %s failed: %s", dataset, candidate, e)
            errors.append(f"{candidate}: {e}")
    raise failure(dataset, errors)


def _first_success_parallel(candidates, attempt, dataset, retry_on, failure):
    errors = []
    pool = ThreadPoolExecutor(max_workers=len(candidates))
    try:
        pending = {pool.submit(attempt, c): c for c in candidates}
        while pending:
            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for fut in done:
                candidate = pending.pop(fut)
                try:
                    result = fut.result()
                except retry_on as e:
                    log.warning("%s: %s failed: %s", dataset, candidate, e)
                    errors.append(f"{candidate}: {e}")
                    continue
                for other in pending:
                    other.cancel()
                return result
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
    raise failure(dataset, errors)
