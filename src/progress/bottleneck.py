"""Planned vs. actual progress per route step, and bottleneck classification.

Each step gets at most one bottleneck type, checked in a fixed precedence:
quality first, then downtime, then pace. A step with high rejections and
high downtime is a quality issue.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from typing import Optional

from src.config import BottleneckConfig
from src.models.progress import (
    BottleneckType,
    ProductionLog,
    RouteProgressReport,
    RouteStepProgress,
    StepActuals,
)
from src.models.route import RouteStep, RouteStepStatus
from src.models.work_order import WorkOrder

logger = logging.getLogger(__name__)


def rejection_rate(actuals: StepActuals) -> Optional[float]:
    inspected = actuals.actual_ok_qty + actuals.total_rejections
    if inspected <= 0:
        return None
    return actuals.total_rejections / inspected


def downtime_fraction(actuals: StepActuals) -> Optional[float]:
    total = actuals.total_downtime_mins + actuals.total_runtime_mins
    if total <= 0:
        return None
    return actuals.total_downtime_mins / total


def is_slow(actuals: StepActuals, config: BottleneckConfig) -> bool:
    """Behind pace: still running after several logs with little OK output."""
    return (
        actuals.status == RouteStepStatus.IN_PROGRESS
        and actuals.log_count > config.slow_progress_min_logs
        and actuals.planned_quantity > 0
        and actuals.actual_ok_qty < actuals.planned_quantity * config.slow_progress_ratio
    )


def classify_step(
    actuals: StepActuals, config: Optional[BottleneckConfig] = None
) -> Optional[BottleneckType]:
    config = config or BottleneckConfig()

    rate = rejection_rate(actuals)
    if rate is not None and rate > config.rejection_rate_threshold:
        return BottleneckType.QUALITY_ISSUE

    fraction = downtime_fraction(actuals)
    if fraction is not None and fraction > config.downtime_fraction_threshold:
        return BottleneckType.DOWNTIME_ISSUE

    if is_slow(actuals, config):
        return BottleneckType.SLOW_PROGRESS

    return None


def progress_pct(actual: int, planned: int) -> float:
    if planned <= 0:
        return 0.0
    return round(actual / planned * 100, 1)


def _step_status(step: RouteStep, actuals: StepActuals) -> RouteStepStatus:
    if step.status == RouteStepStatus.COMPLETED:
        return step.status
    if actuals.planned_quantity > 0 and actuals.actual_ok_qty >= actuals.planned_quantity:
        return RouteStepStatus.COMPLETED
    if actuals.log_count > 0:
        return RouteStepStatus.IN_PROGRESS
    return step.status


def collect_actuals(
    step: RouteStep, logs: Iterable[ProductionLog], planned_quantity: int
) -> StepActuals:
    """Sum a step's production logs. Negative values are clamped to zero."""
    actuals = StepActuals(planned_quantity=max(0, planned_quantity))
    for log in logs:
        actuals.actual_ok_qty += max(0, log.ok_quantity)
        actuals.total_rejections += max(0, log.total_rejection_quantity)
        actuals.total_downtime_mins += max(0.0, log.total_downtime_minutes)
        actuals.total_runtime_mins += max(0.0, log.actual_runtime_minutes)
        actuals.log_count += 1
        if actuals.last_activity_date is None or log.log_date > actuals.last_activity_date:
            actuals.last_activity_date = log.log_date
    actuals.status = _step_status(step, actuals)
    return actuals


class BottleneckDetector:
    """Build a route progress report for one work order.

    Usage:
        report = BottleneckDetector(config.engine.bottleneck).detect(steps, logs, wo)
        report.has_bottleneck
    """

    def __init__(self, config: Optional[BottleneckConfig] = None):
        self.config = config or BottleneckConfig()

    def detect(
        self,
        steps: Iterable[RouteStep],
        logs: Iterable[ProductionLog],
        work_order: WorkOrder,
    ) -> RouteProgressReport:
        logs_by_step: dict[int, list[ProductionLog]] = defaultdict(list)
        unassigned = 0
        for log in logs:
            if log.route_step_id is None:
                unassigned += 1
            else:
                logs_by_step[log.route_step_id].append(log)
        if unassigned:
            logger.debug(
                "%d production logs on WO %s have no route step", unassigned, work_order.id
            )

        progress = []
        for step in sorted(steps, key=lambda s: s.sequence_number):
            planned = step.target_quantity if step.target_quantity is not None else work_order.quantity
            actuals = collect_actuals(step, logs_by_step.get(step.id, []), planned)
            progress.append(
                RouteStepProgress(
                    **actuals.model_dump(),
                    route_id=step.id,
                    sequence_number=step.sequence_number,
                    operation_type=step.operation_type,
                    process_name=step.process_name,
                    is_external=step.is_external,
                    is_mandatory=step.is_mandatory,
                    bottleneck_type=classify_step(actuals, self.config),
                    progress_pct=progress_pct(actuals.actual_ok_qty, actuals.planned_quantity),
                )
            )

        return RouteProgressReport(
            work_order_id=work_order.id,
            steps=progress,
            has_bottleneck=any(p.bottleneck_type is not None for p in progress),
        )
