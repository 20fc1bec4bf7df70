"""Handler that reads a work order's records and recomputes its full state."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from threading import Lock
from typing import Any, Awaitable, Callable, Iterable, Optional

from cachetools import LRUCache, TTLCache

from src.config import EngineConfig
from src.exceptions import DatabaseError, RecordNotFoundError
from src.gates.completion import evaluate_completion, evaluate_logging_permission
from src.gates.release import evaluate_release
from src.ledger.batch_ledger import aggregate_stages, summarize_quantities
from src.models.batch import QuantitySummary, StageBreakdown
from src.models.gates import (
    CompletionDecision,
    LoggingPermission,
    ReleaseDecision,
    WorkOrderState,
)
from src.models.work_order import CompletionState
from src.progress.bottleneck import BottleneckDetector
from src.qc.gate_resolver import QCGateResolver
from src.query.record_reader import RecordReader

logger = logging.getLogger(__name__)

# Component name -> inputs it depends on. A failed input fails the component.
RELEASE_INPUTS = ("work_order",)
COMPLETION_INPUTS = ("work_order",)
LOGGING_INPUTS = ("work_order",)


class WorkOrderStateHandler:
    """Read-and-recompute cycle for one work order.

    Each record family is read independently. A failed read is logged,
    reported under ``WorkOrderState.errors`` and replaced by the last good
    value for that work order (or an empty default). The release, completion
    and logging decisions fail closed whenever their inputs are not fresh.

    Cache tiers:
    - L1 (Memory): TTLCache of computed states, invalidated by the change feed
    - Last good: LRUCache of component reads, used only when a read fails
    """

    def __init__(
        self,
        reader: RecordReader,
        engine_config: Optional[EngineConfig] = None,
        resolver: Optional[QCGateResolver] = None,
    ):
        self.reader = reader
        self.config = engine_config or EngineConfig()
        self.resolver = resolver or QCGateResolver()
        self.detector = BottleneckDetector(self.config.bottleneck)

        refresh = self.config.refresh
        self._memory_cache_enabled = refresh.cache_enabled
        self._memory_cache: Optional[TTLCache] = None
        if refresh.cache_enabled:
            self._memory_cache = TTLCache(
                maxsize=refresh.cache_max_size, ttl=refresh.cache_ttl_seconds
            )
        self._last_good: LRUCache = LRUCache(maxsize=refresh.cache_max_size * 6)
        self._cache_lock = Lock()

        self._memory_hits = 0
        self._memory_misses = 0

    async def get_state(self, wo_id: str, use_cache: bool = True) -> WorkOrderState:
        """Return the computed state, from L1 when allowed and present."""
        if use_cache and self._memory_cache is not None:
            with self._cache_lock:
                if wo_id in self._memory_cache:
                    self._memory_hits += 1
                    logger.debug("L1 memory cache hit for WO %s", wo_id)
                    return self._memory_cache[wo_id].model_copy(update={"data_source": "cache"})
                self._memory_misses += 1

        state = await self._compute(wo_id)

        # States computed from stale inputs are not cached; the next request retries.
        if self._memory_cache is not None and not state.errors:
            with self._cache_lock:
                self._memory_cache[wo_id] = state
        return state

    async def _compute(self, wo_id: str) -> WorkOrderState:
        errors: dict[str, str] = {}

        work_order = await self._read(wo_id, "work_order", self.reader.get_work_order, None, errors)
        if work_order is None:
            if "work_order" in errors:
                # Nothing to fall back to; surface the store failure.
                raise DatabaseError(
                    f"Work order {wo_id} unavailable: {errors['work_order']}"
                )
            raise RecordNotFoundError(f"Work order {wo_id} not found")

        qc_records, batches, moves, steps, logs = await asyncio.gather(
            self._read(wo_id, "qc_records", self.reader.get_qc_records, [], errors),
            self._read(wo_id, "batches", lambda w: self.reader.get_batches([w]), [], errors),
            self._read(wo_id, "external_moves", lambda w: self.reader.get_external_moves([w]), [], errors),
            self._read(wo_id, "route_steps", self.reader.get_route_steps, [], errors),
            self._read(wo_id, "production_logs", self.reader.get_production_logs, [], errors),
        )

        qc_gates = self._derive("qc_gates", errors, None, self.resolver.resolve, work_order, qc_records)
        stages = self._derive(
            "stages", errors, StageBreakdown(), aggregate_stages, batches, moves, work_order.quantity
        )
        quantities = self._derive(
            "quantities", errors, QuantitySummary(), summarize_quantities, work_order, batches
        )
        route_progress = self._derive(
            "route_progress", errors, None, self.detector.detect, steps, logs, work_order
        )

        release = self._gate(
            "release", errors, RELEASE_INPUTS,
            ReleaseDecision(reasons=["Work order state is unavailable"]),
            evaluate_release, work_order,
        )
        completion = self._gate(
            "completion", errors, COMPLETION_INPUTS,
            CompletionDecision(
                state=CompletionState.COMPLETE if work_order.production_complete
                else CompletionState.IN_PROGRESS,
            ),
            evaluate_completion, work_order, None if "qc_records" in errors else qc_gates,
        )
        logging_permission = self._gate(
            "logging", errors, LOGGING_INPUTS,
            LoggingPermission(allowed=False, reason="Work order state is unavailable"),
            evaluate_logging_permission, work_order,
        )

        return WorkOrderState(
            work_order=work_order,
            qc_gates=qc_gates,
            release=release,
            completion=completion,
            logging=logging_permission,
            stages=stages,
            quantities=quantities,
            route_progress=route_progress,
            errors=errors,
            computed_at=datetime.now(),
        )

    async def _read(
        self,
        wo_id: str,
        component: str,
        fetch: Callable[[str], Awaitable[Any]],
        default: Any,
        errors: dict[str, str],
    ) -> Any:
        key = (wo_id, component)
        try:
            value = await fetch(wo_id)
        except Exception as exc:
            logger.warning("Read of %s failed for WO %s: %s", component, wo_id, exc, exc_info=True)
            errors[component] = str(exc) or exc.__class__.__name__
            with self._cache_lock:
                return self._last_good.get(key, default)
        with self._cache_lock:
            self._last_good[key] = value
        return value

    @staticmethod
    def _derive(component: str, errors: dict[str, str], default: Any, func, *args) -> Any:
        try:
            return func(*args)
        except Exception as exc:
            logger.error("Computing %s failed: %s", component, exc, exc_info=True)
            errors[component] = str(exc) or exc.__class__.__name__
            return default

    def _gate(
        self,
        component: str,
        errors: dict[str, str],
        inputs: Iterable[str],
        closed: Any,
        func,
        *args,
    ) -> Any:
        """Evaluate a gate, returning the closed decision if any input is stale."""
        if any(name in errors for name in inputs):
            return closed
        decision = self._derive(component, errors, None, func, *args)
        return closed if decision is None else decision

    # =========================================================================
    # Cache management
    # =========================================================================

    def invalidate(self, wo_ids: Optional[set] = None) -> int:
        """Drop cached states. ``None`` (or ``None`` inside the set) drops all."""
        if self._memory_cache is None:
            return 0
        with self._cache_lock:
            if wo_ids is None or None in wo_ids:
                count = len(self._memory_cache)
                self._memory_cache.clear()
                return count
            count = 0
            for wo_id in wo_ids:
                if self._memory_cache.pop(wo_id, None) is not None:
                    count += 1
            return count

    def clear_memory_cache(self) -> int:
        return self.invalidate(None)

    def get_cache_stats(self) -> dict:
        total = self._memory_hits + self._memory_misses
        return {
            "memory_cache": {
                "enabled": self._memory_cache_enabled,
                "hits": self._memory_hits,
                "misses": self._memory_misses,
                "hit_rate": self._memory_hits / total if total > 0 else 0.0,
                "size": len(self._memory_cache) if self._memory_cache is not None else 0,
                "max_size": self._memory_cache.maxsize if self._memory_cache is not None else 0,
                "ttl_seconds": self._memory_cache.ttl if self._memory_cache is not None else 0,
            },
            "last_good_entries": len(self._last_good),
        }
