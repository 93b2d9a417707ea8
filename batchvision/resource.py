"""Lazily constructed analysis resource shared by concurrent jobs.

The expensive construction step (loading a model, warming it up) runs at
most once per :class:`AnalyzerResource`, no matter how many coroutines ask
for it before it exists. The first caller starts a construction task; every
caller, the first one included, awaits that task through ``asyncio.shield``
so that cancelling one waiter never cancels the construction for the others.

Construction failure is terminal: the resource moves to ``FAILED`` and every
waiting and future caller receives the same
:class:`~batchvision.errors.ResourceConstructionFailure`. There is no
automatic retry; a new process (or a new resource object) is the recovery
path.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional
import asyncio
import concurrent.futures as cf
import logging

from .errors import ResourceConstructionFailure
from .metrics import Stopwatch

logger = logging.getLogger(__name__)


class ResourceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class AnalyzerResource:
    def __init__(
        self,
        factory: Callable[[], Any],
        name: str = "model",
        executor: Optional[cf.Executor] = None,
    ):
        self.name = name
        self._factory = factory
        self._executor = executor
        self._state = ResourceState.UNINITIALIZED
        self._handle: Any = None
        self._error: Optional[ResourceConstructionFailure] = None
        self._task: Optional[asyncio.Task] = None
        self.constructions = 0

    @property
    def state(self) -> ResourceState:
        return self._state

    @property
    def handle(self) -> Any:
        if self._state is not ResourceState.READY:
            raise RuntimeError(f"{self.name} is not ready (state={self._state.value})")
        return self._handle

    @property
    def error(self) -> Optional[ResourceConstructionFailure]:
        return self._error

    async def ensure_ready(self) -> Any:
        """Return the shared handle, constructing it on first use."""

        if self._state is ResourceState.UNINITIALIZED:
            # No await between the check and the transition: exactly one
            # coroutine gets to start construction.
            self._state = ResourceState.INITIALIZING
            self._task = asyncio.get_running_loop().create_task(self._construct())
        if self._state is ResourceState.INITIALIZING:
            await asyncio.shield(self._task)
        return self._result()

    def _result(self) -> Any:
        if self._state is ResourceState.READY:
            return self._handle
        if self._state is ResourceState.FAILED:
            raise self._error
        raise RuntimeError(f"{self.name} in unexpected state {self._state.value}")

    async def _construct(self) -> None:
        loop = asyncio.get_running_loop()
        self.constructions += 1
        logger.info("constructing %s", self.name)
        sw = Stopwatch()
        try:
            handle = await loop.run_in_executor(self._executor, self._factory)
        except asyncio.CancelledError:
            # waiters observe FAILED and raise the stored error, same as later callers
            self._fail(ResourceConstructionFailure(f"{self.name} construction cancelled"))
            return
        except Exception as e:
            err = e if isinstance(e, ResourceConstructionFailure) else ResourceConstructionFailure(
                f"{self.name} construction failed: {e}"
            )
            if err is not e:
                err.__cause__ = e
            self._fail(err)
            return
        self._handle = handle
        self._state = ResourceState.READY
        logger.info("%s ready in %.1f ms", self.name, sw.elapsed_ms())

    def _fail(self, err: ResourceConstructionFailure) -> None:
        self._error = err
        self._state = ResourceState.FAILED
        logger.error("%s", err)
