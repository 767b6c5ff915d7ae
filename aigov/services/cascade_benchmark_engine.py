"""
Cascade Benchmark Engine — batch capability derivation.

Walks a list of use-case records, resolves each one's TOM phase, runs
``derive_capability_defaults`` and classifies the outcome:

    derived  forecast computed (and handed to ``update_fn`` unless dry run)
    skipped  hand-edited forecast protected from overwrite
    error    derivation or persistence raised; the batch carries on

Records are plain mappings with snake_case keys (``id``, ``title``,
``use_case_status``, ``deployment_status``, ``tom_phase_override``,
``quadrant``, ``t_shirt_size``, ``capability_transition``, ...).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from aigov.services.capability_transition import (
    DEFAULT_BENCHMARK_CONFIG,
    DEFAULT_TRANSITION_CONFIG,
    CapabilityBenchmarkConfig,
    CapabilityTransitionConfig,
    UseCaseCapabilityTransition,
    derive_capability_defaults,
    should_recalculate_capability,
)
from aigov.services.tom import TomConfig, derive_phase

logger = logging.getLogger(__name__)

PROTECTED_REASON = "Has manual capability data - override protection"
DRY_RUN_REASON = "Dry run - not saved"

UpdateFn = Callable[[Any, UseCaseCapabilityTransition], None]


@dataclass
class DerivationResult:
    use_case_id: Any
    title: str
    status: str  # derived | skipped | error
    reason: str | None = None
    independence_percentage: float | None = None

    def to_dict(self) -> dict:
        return {
            "use_case_id": self.use_case_id,
            "title": self.title,
            "status": self.status,
            "reason": self.reason,
            "independence_percentage": self.independence_percentage,
        }


@dataclass
class CascadeResult:
    total_processed: int = 0
    derived: int = 0
    skipped: int = 0
    errors: int = 0
    results: list[DerivationResult] = field(default_factory=list)

    def add(self, result: DerivationResult) -> None:
        self.results.append(result)
        if result.status == "derived":
            self.derived += 1
        elif result.status == "skipped":
            self.skipped += 1
        else:
            self.errors += 1

    def to_dict(self) -> dict:
        return {
            "total_processed": self.total_processed,
            "derived": self.derived,
            "skipped": self.skipped,
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class SingleDerivation:
    capability: UseCaseCapabilityTransition | None
    skipped: bool = False
    reason: str | None = None


def prepare_use_case_for_derivation(
    use_case: Mapping[str, Any],
    tom_config: TomConfig | Mapping[str, Any] | None,
) -> dict:
    """Copy of the record with ``tom_phase`` resolved (override wins)."""
    record = dict(use_case)
    tom_phase = use_case.get("tom_phase_override")
    if not tom_phase and tom_config is not None:
        tom_phase = derive_phase(
            use_case.get("use_case_status"),
            use_case.get("deployment_status"),
            use_case.get("tom_phase_override"),
            tom_config,
        ).id
    record["tom_phase"] = tom_phase
    return record


def derive_capability_for_use_case(
    use_case: Mapping[str, Any],
    tom_config: TomConfig | Mapping[str, Any] | None = None,
    *,
    force_recalculate: bool = False,
    now: datetime | None = None,
    transition_config: CapabilityTransitionConfig = DEFAULT_TRANSITION_CONFIG,
    benchmark_config: CapabilityBenchmarkConfig = DEFAULT_BENCHMARK_CONFIG,
) -> SingleDerivation:
    """Derive one record, honouring override protection.

    Exceptions from the derivation itself propagate; the batch driver
    converts them into ``error`` results.
    """
    existing = use_case.get("capability_transition")
    if not force_recalculate and not should_recalculate_capability(existing):
        return SingleDerivation(capability=None, skipped=True, reason=PROTECTED_REASON)

    record = prepare_use_case_for_derivation(use_case, tom_config)
    capability = derive_capability_defaults(
        record, transition_config, benchmark_config, now=now, existing=existing,
    )
    return SingleDerivation(capability=capability)


def run_cascade_benchmark_derivation(
    use_cases: Iterable[Mapping[str, Any]],
    tom_config: TomConfig | Mapping[str, Any] | None,
    update_fn: UpdateFn | None = None,
    *,
    force_recalculate: bool = False,
    dry_run: bool = False,
    now: datetime | None = None,
    transition_config: CapabilityTransitionConfig = DEFAULT_TRANSITION_CONFIG,
    benchmark_config: CapabilityBenchmarkConfig = DEFAULT_BENCHMARK_CONFIG,
) -> CascadeResult:
    """Derive capability forecasts for every record; one failure never aborts the run."""
    now = now or datetime.now(timezone.utc)
    outcome = CascadeResult()

    for use_case in use_cases:
        outcome.total_processed += 1
        uc_id = use_case.get("id")
        title = use_case.get("title") or "Untitled"

        try:
            single = derive_capability_for_use_case(
                use_case, tom_config,
                force_recalculate=force_recalculate, now=now,
                transition_config=transition_config, benchmark_config=benchmark_config,
            )
        except Exception as exc:
            logger.warning("Capability derivation failed for use case %s", uc_id, exc_info=True)
            outcome.add(DerivationResult(uc_id, title, "error", f"Derivation error: {exc}"))
            continue

        if single.skipped:
            logger.debug("Use case %s skipped: %s", uc_id, single.reason)
            outcome.add(DerivationResult(uc_id, title, "skipped", single.reason))
            continue

        pct = single.capability.independence_percentage
        if dry_run or update_fn is None:
            outcome.add(DerivationResult(uc_id, title, "derived", DRY_RUN_REASON if dry_run else None, pct))
            continue

        try:
            update_fn(uc_id, single.capability)
        except Exception as exc:
            logger.error("Capability update failed for use case %s", uc_id, exc_info=True)
            outcome.add(DerivationResult(uc_id, title, "error", f"Update failed: {exc}"))
            continue
        outcome.add(DerivationResult(uc_id, title, "derived", None, pct))

    logger.info(
        "Cascade derivation: processed=%d derived=%d skipped=%d errors=%d dry_run=%s",
        outcome.total_processed, outcome.derived, outcome.skipped, outcome.errors, dry_run,
    )
    return outcome


def get_capability_population_stats(use_cases: Iterable[Mapping[str, Any]]) -> dict:
    total = with_capability = with_derived = with_manual = 0
    for use_case in use_cases:
        total += 1
        cap = use_case.get("capability_transition")
        if not cap:
            continue
        with_capability += 1
        if should_recalculate_capability(cap):
            with_derived += 1
        else:
            with_manual += 1
    return {
        "total": total,
        "with_capability": with_capability,
        "with_derived_capability": with_derived,
        "with_manual_capability": with_manual,
        "needs_population": total - with_capability,
    }
