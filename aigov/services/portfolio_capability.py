"""
Portfolio capability roll-up.

Aggregates per-use-case capability forecasts into portfolio statistics and a
four-point staffing projection. Independence at each projection point is
recomputed from summed FTE, not averaged across use cases.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from aigov.services.capability_transition import (
    DEFAULT_TRANSITION_CONFIG,
    PLANNED_CHECKPOINTS,
    CapabilityTransitionConfig,
    UseCaseCapabilityTransition,
    add_months,
    as_capability,
    calculate_independence_from_staffing,
)

logger = logging.getLogger(__name__)

FULL_INDEPENDENCE_THRESHOLD = 85
MONTHLY_INDEPENDENCE_GROWTH = 5
PROJECTION_OFFSETS = (("month6", 6), ("month12", 12), ("month18", 18))


@dataclass
class PortfolioCapabilitySummary:
    overall_independence: int
    use_cases_tracked: int
    total_vendor_fte: float
    total_client_fte: float
    kt_milestones_completed: int
    kt_milestones_total: int
    training_hours_completed: float
    training_hours_planned: float
    projected_full_independence: str | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StaffingProjectionPoint:
    month: str
    vendor_fte: float
    client_fte: float
    independence_percentage: int

    def to_dict(self) -> dict:
        return asdict(self)


def _tracked(use_cases: Iterable[Mapping[str, Any]]) -> list[tuple[Mapping[str, Any], UseCaseCapabilityTransition]]:
    out = []
    for uc in use_cases:
        cap = as_capability(uc.get("capability_transition"))
        if cap is not None:
            out.append((uc, cap))
    return out


def _investment_weight(use_case: Mapping[str, Any]) -> float:
    """Initial investment if recorded, else 1."""
    amount = use_case.get("investment")
    if amount is None:
        investment = ((use_case.get("value_realization") or {}).get("investment") or {})
        amount = investment.get("initial_investment")
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        return 1.0
    return amount if amount > 0 else 1.0


def _split_independence(vendor: float, client: float) -> int:
    total = vendor + client
    return round(client / total * 100) if total > 0 else 0


def _month(value: datetime, offset: int = 0) -> str:
    return add_months(value.replace(day=1), offset).strftime("%Y-%m")


def calculate_overall_portfolio_independence(use_cases: Iterable[Mapping[str, Any]]) -> int:
    """Investment-weighted independence over use cases with a non-zero figure."""
    weighted = weight_total = 0.0
    for uc, cap in _tracked(use_cases):
        if not cap.independence_percentage:
            continue
        weight = _investment_weight(uc)
        weighted += cap.independence_percentage * weight
        weight_total += weight
    return round(weighted / weight_total) if weight_total else 0


def aggregate_portfolio_capability(
    use_cases: Iterable[Mapping[str, Any]],
    config: CapabilityTransitionConfig = DEFAULT_TRANSITION_CONFIG,
    *,
    now: datetime | None = None,
) -> PortfolioCapabilitySummary:
    now = now or datetime.now(timezone.utc)
    tracked = _tracked(use_cases)

    vendor = client = training_done = training_planned = 0.0
    kt_done = 0
    weighted = weight_total = 0.0
    for uc, cap in tracked:
        weight = _investment_weight(uc)
        vendor += cap.vendor_fte
        client += cap.client_fte
        kt_done += len(cap.knowledge_transfer.get("completed_milestones") or [])
        training_done += cap.training.get("total_training_hours_completed") or 0
        training_planned += cap.training.get("total_training_hours_planned") or 0
        weighted += cap.independence_percentage * weight
        weight_total += weight

    overall = round(weighted / weight_total) if weight_total else 0

    projected = None
    if tracked and overall < FULL_INDEPENDENCE_THRESHOLD:
        months_to_go = math.ceil((FULL_INDEPENDENCE_THRESHOLD - overall) / MONTHLY_INDEPENDENCE_GROWTH)
        projected = _month(now, months_to_go)

    return PortfolioCapabilitySummary(
        overall_independence=overall,
        use_cases_tracked=len(tracked),
        total_vendor_fte=round(vendor, 1),
        total_client_fte=round(client, 1),
        kt_milestones_completed=kt_done,
        kt_milestones_total=len(tracked) * len(config.knowledge_transfer_milestones),
        training_hours_completed=training_done,
        training_hours_planned=training_planned,
        projected_full_independence=projected,
    )


def generate_aggregate_staffing_projection(
    use_cases: Iterable[Mapping[str, Any]],
    *,
    now: datetime | None = None,
) -> list[StaffingProjectionPoint]:
    tracked = _tracked(use_cases)
    if not tracked:
        return []
    now = now or datetime.now(timezone.utc)

    current_vendor = sum(cap.vendor_fte for _, cap in tracked)
    current_client = sum(cap.client_fte for _, cap in tracked)
    points = [StaffingProjectionPoint(
        month=_month(now),
        vendor_fte=round(current_vendor, 1),
        client_fte=round(current_client, 1),
        independence_percentage=_split_independence(current_vendor, current_client),
    )]
    for checkpoint, offset in PROJECTION_OFFSETS:
        vendor = sum(cap.staffing["planned"][checkpoint]["vendor"] for _, cap in tracked)
        client = sum(cap.staffing["planned"][checkpoint]["client"] for _, cap in tracked)
        points.append(StaffingProjectionPoint(
            month=_month(now, offset),
            vendor_fte=round(vendor, 1),
            client_fte=round(client, 1),
            independence_percentage=_split_independence(vendor, client),
        ))
    return points


def project_independence_timeline(
    staffing: Mapping[str, Any],
    start_month: str | None = None,
) -> list[StaffingProjectionPoint]:
    """Four-point timeline for a single use case's staffing plan."""
    if start_month:
        start = datetime.strptime(start_month, "%Y-%m")
    else:
        start = datetime.now(timezone.utc)
    current = staffing["current"]
    points = [StaffingProjectionPoint(
        month=_month(start),
        vendor_fte=current["vendor"]["total"],
        client_fte=current["client"]["total"],
        independence_percentage=calculate_independence_from_staffing(current),
    )]
    for (checkpoint, _), (_, offset) in zip(PLANNED_CHECKPOINTS, PROJECTION_OFFSETS):
        planned = staffing["planned"][checkpoint]
        points.append(StaffingProjectionPoint(
            month=_month(start, offset),
            vendor_fte=planned["vendor"],
            client_fte=planned["client"],
            independence_percentage=_split_independence(planned["vendor"], planned["client"]),
        ))
    return points
