"""Batch capability derivation — outcomes, override protection, dry run."""

from datetime import datetime, timezone

import pytest

from aigov.services.cascade_benchmark_engine import (
    DRY_RUN_REASON,
    PROTECTED_REASON,
    derive_capability_for_use_case,
    get_capability_population_stats,
    prepare_use_case_for_derivation,
    run_cascade_benchmark_derivation,
)
from aigov.services.tom import default_tom_config

NOW = datetime(2026, 3, 15, tzinfo=timezone.utc)

MANUAL = {"derived": False, "independence_percentage": 55}


def _records():
    return [
        {"id": 1, "title": "Claims triage", "use_case_status": "In-flight",
         "deployment_status": "Pilot", "t_shirt_size": "M", "quadrant": "Quick Win"},
        {"id": 2, "title": "Broker chatbot", "use_case_status": "Implemented",
         "deployment_status": "Production", "capability_transition": dict(MANUAL)},
        {"id": 3, "title": "Fraud scoring", "use_case_status": "Backlog", "t_shirt_size": "XXL"},
    ]


class _Recorder:
    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    def __call__(self, use_case_id, capability):
        if use_case_id in self.fail_for:
            raise RuntimeError("storage offline")
        self.calls.append((use_case_id, capability))


# ═════════════════════════════════════════════════════════════════
# 1. Phase resolution
# ═════════════════════════════════════════════════════════════════
class TestPrepare:
    def test_phase_derived_from_status(self):
        record = prepare_use_case_for_derivation({"use_case_status": "In-flight"}, default_tom_config())
        assert record["tom_phase"] == "strategic"

    def test_override_wins(self):
        record = prepare_use_case_for_derivation(
            {"use_case_status": "Backlog", "tom_phase_override": "steady_state"}, default_tom_config(),
        )
        assert record["tom_phase"] == "steady_state"

    def test_input_not_mutated(self):
        source = {"use_case_status": "In-flight"}
        prepare_use_case_for_derivation(source, default_tom_config())
        assert "tom_phase" not in source

    def test_no_tom_config_leaves_phase_empty(self):
        assert prepare_use_case_for_derivation({"use_case_status": "In-flight"}, None)["tom_phase"] is None


# ═════════════════════════════════════════════════════════════════
# 2. Single derivation
# ═════════════════════════════════════════════════════════════════
class TestSingleDerivation:
    def test_manual_data_protected(self):
        single = derive_capability_for_use_case({"capability_transition": MANUAL}, default_tom_config(), now=NOW)
        assert single.skipped is True
        assert single.reason == PROTECTED_REASON

    def test_force_overrides_protection(self):
        single = derive_capability_for_use_case(
            {"use_case_status": "Implemented", "capability_transition": MANUAL},
            default_tom_config(), force_recalculate=True, now=NOW,
        )
        assert single.skipped is False
        assert single.capability.archetype == "transition_hybrid"

    def test_derivation_errors_propagate(self):
        with pytest.raises(ValueError):
            derive_capability_for_use_case({"t_shirt_size": "XXL"}, default_tom_config(), now=NOW)


# ═════════════════════════════════════════════════════════════════
# 3. Batch run
# ═════════════════════════════════════════════════════════════════
class TestCascadeRun:
    def test_mixed_batch(self):
        recorder = _Recorder()
        result = run_cascade_benchmark_derivation(_records(), default_tom_config(), recorder, now=NOW)

        assert result.total_processed == 3
        assert (result.derived, result.skipped, result.errors) == (1, 1, 1)
        assert result.derived + result.skipped + result.errors == result.total_processed

        by_id = {r.use_case_id: r for r in result.results}
        assert by_id[1].status == "derived"
        assert by_id[1].independence_percentage == 40
        assert by_id[2].status == "skipped"
        assert by_id[2].reason == PROTECTED_REASON
        assert by_id[3].status == "error"
        assert by_id[3].reason.startswith("Derivation error:")
        assert [call[0] for call in recorder.calls] == [1]

    def test_dry_run_never_calls_update(self):
        recorder = _Recorder()
        result = run_cascade_benchmark_derivation(_records(), default_tom_config(), recorder,
                                                  dry_run=True, now=NOW)
        assert recorder.calls == []
        assert result.results[0].status == "derived"
        assert result.results[0].reason == DRY_RUN_REASON

    def test_force_derives_manual_records(self):
        recorder = _Recorder()
        result = run_cascade_benchmark_derivation(_records(), default_tom_config(), recorder,
                                                  force_recalculate=True, now=NOW)
        assert result.derived == 2
        assert result.skipped == 0
        assert sorted(call[0] for call in recorder.calls) == [1, 2]

    def test_update_failure_is_isolated(self):
        recorder = _Recorder(fail_for={1})
        records = _records()
        records[1]["capability_transition"] = None
        result = run_cascade_benchmark_derivation(records, default_tom_config(), recorder, now=NOW)
        by_id = {r.use_case_id: r for r in result.results}
        assert by_id[1].status == "error"
        assert by_id[1].reason == "Update failed: storage offline"
        assert by_id[2].status == "derived"
        assert [call[0] for call in recorder.calls] == [2]

    def test_without_update_fn(self):
        result = run_cascade_benchmark_derivation(_records()[:1], default_tom_config(), now=NOW)
        assert result.results[0].status == "derived"
        assert result.results[0].reason is None

    def test_records_are_not_mutated(self):
        records = _records()
        run_cascade_benchmark_derivation(records, default_tom_config(), _Recorder(), now=NOW)
        assert records == _records()

    def test_untitled_fallback(self):
        result = run_cascade_benchmark_derivation([{"id": 9}], None, now=NOW)
        assert result.results[0].title == "Untitled"

    def test_empty_batch(self):
        result = run_cascade_benchmark_derivation([], default_tom_config(), now=NOW)
        assert result.to_dict() == {"total_processed": 0, "derived": 0, "skipped": 0,
                                     "errors": 0, "results": []}


class TestPopulationStats:
    def test_counts(self):
        stats = get_capability_population_stats([
            {"capability_transition": None},
            {"capability_transition": {"derived": True}},
            {"capability_transition": MANUAL},
            {},
        ])
        assert stats == {
            "total": 4,
            "with_capability": 2,
            "with_derived_capability": 1,
            "with_manual_capability": 1,
            "needs_population": 2,
        }


class TestIdempotence:
    def test_forced_rerun_with_fixed_clock_matches(self):
        first, second = [], []
        run_cascade_benchmark_derivation(
            _records(), default_tom_config(), lambda i, c: first.append((i, c.to_dict())),
            force_recalculate=True, now=NOW,
        )
        run_cascade_benchmark_derivation(
            _records(), default_tom_config(), lambda i, c: second.append((i, c.to_dict())),
            force_recalculate=True, now=NOW,
        )
        assert first == second
        assert [i for i, _ in first] == [1, 2]
