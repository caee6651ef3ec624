"""Execution dispatcher for per-layer dither work.

AIDEV-NOTE: execute_request is the single implementation run by both the
process-pool worker and the synchronous fallback, which keeps the two
paths byte-identical. Requests must stay picklable.
"""

import logging
from concurrent.futures import CancelledError, Executor, Future, ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass
from typing import Callable

from halftone_lab.models import DitherType, Layer, PostEffects, RasterBuffer

from .dithering import DitherOptions, dither
from .preprocessing import apply_ink_bleed

logger = logging.getLogger(__name__)


class PassCancelledError(Exception):
    """Raised when collecting a pass that a newer pass superseded."""


@dataclass(frozen=True)
class DitherRequest:
    """Everything needed to dither one layer, independent of session state."""

    layer_id: int
    dither_type: DitherType
    threshold: float
    scale: float
    angle: float
    hardness: float
    options: DitherOptions
    source: RasterBuffer
    post_effects: PostEffects = PostEffects()

    @classmethod
    def for_layer(
        cls,
        layer: Layer,
        source: RasterBuffer,
        post_effects: PostEffects | None = None,
    ) -> "DitherRequest":
        return cls(
            layer_id=layer.id,
            dither_type=layer.dither_type,
            threshold=layer.threshold,
            scale=layer.scale,
            angle=layer.angle,
            hardness=layer.hardness,
            options=DitherOptions.from_layer(layer),
            source=source,
            post_effects=post_effects or PostEffects(),
        )


def execute_request(request: DitherRequest) -> RasterBuffer:
    """Dither one layer and apply its post effects."""
    result = dither(
        request.dither_type,
        request.source,
        request.threshold,
        request.scale,
        request.angle,
        request.hardness,
        request.options,
    )
    effects = request.post_effects
    if effects.ink_bleed:
        # Seeded by layer id so bleed is stable across passes
        result = apply_ink_bleed(
            result,
            effects.ink_bleed_amount,
            effects.ink_bleed_roughness,
            seed=request.layer_id,
        )
    return result


class DitherPass:
    """One fan-out of layer requests, collected in request order."""

    def __init__(
        self,
        dispatcher: "DitherDispatcher",
        requests: "list[DitherRequest]",
        futures: "list[Future | None]",
    ):
        self._dispatcher = dispatcher
        self.requests = requests
        self._futures = futures
        self.cancelled = False

    def cancel(self):
        self.cancelled = True
        for future in self._futures:
            if future is not None:
                future.cancel()

    def collect(self) -> "list[RasterBuffer]":
        """Wait for every request and return results in request order.

        Raises:
            PassCancelledError: If a newer pass superseded this one
        """
        results = []
        for request, future in zip(self.requests, self._futures):
            if self.cancelled:
                raise PassCancelledError()
            results.append(self._dispatcher._resolve(request, future))
        if self.cancelled:
            raise PassCancelledError()
        return results


class DitherDispatcher:
    """Runs dither requests on a worker process with a synchronous fallback.

    Args:
        use_worker: Whether to try the parallel worker at all
        max_workers: Worker processes in the pool
        executor_factory: Callable building the executor (defaults to a
            ProcessPoolExecutor); injectable for tests
    """

    def __init__(
        self,
        use_worker: bool = True,
        max_workers: int = 1,
        executor_factory: "Callable[[int], Executor] | None" = None,
    ):
        self.use_worker = use_worker
        self.max_workers = max(1, max_workers)
        self._executor_factory = executor_factory or (
            lambda workers: ProcessPoolExecutor(max_workers=workers)
        )
        self._executor: Executor | None = None
        self._worker_failed = False
        self._current_pass: DitherPass | None = None

    @property
    def worker_available(self) -> bool:
        return self.use_worker and not self._worker_failed

    def _get_executor(self) -> Executor | None:
        if not self.worker_available:
            return None
        if self._executor is None:
            try:
                self._executor = self._executor_factory(self.max_workers)
                logger.debug("Started dither worker with %d process(es)", self.max_workers)
            except (OSError, RuntimeError, NotImplementedError) as e:
                logger.warning("Dither worker unavailable, running synchronously: %s", e)
                self._worker_failed = True
                return None
        return self._executor

    def _mark_broken(self, error: Exception):
        logger.warning("Dither worker failed, falling back to synchronous: %s", error)
        self._worker_failed = True
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _submit(self, request: DitherRequest) -> Future | None:
        executor = self._get_executor()
        if executor is None:
            return None
        try:
            return executor.submit(execute_request, request)
        except (BrokenProcessPool, RuntimeError) as e:
            self._mark_broken(e)
            return None

    def _resolve(self, request: DitherRequest, future: Future | None) -> RasterBuffer:
        if future is None:
            return execute_request(request)
        try:
            return future.result()
        except CancelledError:
            logger.debug("Layer %d request cancelled, computing inline", request.layer_id)
            return execute_request(request)
        except BrokenProcessPool as e:
            self._mark_broken(e)
            return execute_request(request)

    def begin_pass(self, requests: "list[DitherRequest]") -> DitherPass:
        """Cancel the previous pass and submit every request of a new one."""
        self.cancel_all()
        futures = [self._submit(request) for request in requests]
        self._current_pass = DitherPass(self, list(requests), futures)
        return self._current_pass

    def run_pass(self, requests: "list[DitherRequest]") -> "list[RasterBuffer]":
        return self.begin_pass(requests).collect()

    def run_sync(self, request: DitherRequest) -> RasterBuffer:
        return execute_request(request)

    def cancel_all(self):
        if self._current_pass is not None:
            self._current_pass.cancel()
            self._current_pass = None

    def shutdown(self):
        self.cancel_all()
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False
