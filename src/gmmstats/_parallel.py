"""Map independent tasks over a pool of workers."""
from __future__ import annotations

import multiprocessing
from collections.abc import Callable, Iterable
from concurrent.futures import (
    FIRST_EXCEPTION,
    Executor,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from typing import Literal, TypeVar

from gmmstats.utils._logging import logger

T = TypeVar("T")
R = TypeVar("R")


def _make_executor(backend: Literal["thread", "process"], n_workers: int) -> Executor:
    if backend == "thread":
        return ThreadPoolExecutor(max_workers=n_workers)
    elif backend == "process":
        # fork is unsafe once torch has started its own threads
        return ProcessPoolExecutor(
            max_workers=n_workers, mp_context=multiprocessing.get_context("spawn")
        )
    else:
        raise ValueError(f"Invalid backend {backend!r}. Use 'thread' or 'process'.")


def map_unordered(
        fn: Callable[[T], R],
        items: Iterable[T],
        *,
        n_workers: int,
        backend: Literal["thread", "process"] = "thread",
) -> list[R]:
    """Run ``fn`` on every item across a pool of workers.

    Parameters
    ----------
    fn : callable
        Pure function applied to each item. With ``backend="process"`` it must be
        picklable (a module level function or a ``functools.partial`` of one).
    items : iterable
        Work units. Each becomes one task.
    n_workers : int
        Size of the worker pool.
    backend : {"thread", "process"}
        Thread pool or process pool.

    Returns
    -------
    results : list
        One result per item, in no particular order.

    Raises
    ------
    Exception
        The first exception raised by any task. Pending tasks are cancelled and
        no partial results are returned.
    """
    with _make_executor(backend, n_workers) as executor:
        futures = [executor.submit(fn, item) for item in items]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            exc = future.exception()
            if exc is not None:
                for p in pending:
                    p.cancel()
                logger.error(
                    f"A worker failed ({type(exc).__name__}: {exc}); "
                    f"cancelled {len(pending)} pending tasks."
                )
                raise exc
        return [future.result() for future in done]
