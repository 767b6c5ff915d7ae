"""Portfolio capability roll-up and staffing projection."""

from datetime import datetime, timezone

from aigov.services.portfolio_capability import (
    aggregate_portfolio_capability,
    calculate_overall_portfolio_independence,
    generate_aggregate_staffing_projection,
    project_independence_timeline,
)

NOW = datetime(2026, 3, 15, tzinfo=timezone.utc)


def _capability(vendor, client, planned, independence, kt=(), training=(0, 0)):
    return {
        "independence_percentage": independence,
        "staffing": {
            "current": {
                "vendor": {"total": vendor, "by_role": {}},
                "client": {"total": client, "by_role": {}},
            },
            "planned": {
                name: {"vendor": v, "client": c}
                for name, (v, c) in zip(("month6", "month12", "month18"), planned)
            },
        },
        "knowledge_transfer": {"completed_milestones": list(kt)},
        "training": {
            "total_training_hours_completed": training[0],
            "total_training_hours_planned": training[1],
        },
        "derived": True,
    }


def _portfolio():
    return [
        {"id": 1, "investment": 300, "capability_transition": _capability(
            2.4, 1.6, [(1.6, 2.4), (0.5, 3.5), (0.5, 3.5)], 40,
            kt=["kt_001", "kt_002"], training=(0, 80),
        )},
        {"id": 2, "investment": 100, "capability_transition": _capability(
            1.6, 2.4, [(0.4, 3.6), (0.3, 3.7), (0.3, 3.7)], 60,
            kt=["kt_001"], training=(10, 40),
        )},
        {"id": 3, "investment": 5000, "capability_transition": None},
    ]


class TestPortfolioSummary:
    def test_aggregate(self):
        summary = aggregate_portfolio_capability(_portfolio(), now=NOW)
        assert summary.use_cases_tracked == 2
        assert summary.overall_independence == 45
        assert summary.total_vendor_fte == 4.0
        assert summary.total_client_fte == 4.0
        assert summary.kt_milestones_completed == 3
        assert summary.kt_milestones_total == 12
        assert summary.training_hours_completed == 10
        assert summary.training_hours_planned == 120
        # (85 - 45) / 5 = 8 months out
        assert summary.projected_full_independence == "2026-11"

    def test_empty_portfolio(self):
        summary = aggregate_portfolio_capability([], now=NOW)
        assert summary.use_cases_tracked == 0
        assert summary.overall_independence == 0
        assert summary.projected_full_independence is None

    def test_no_projection_once_independent(self):
        portfolio = [{"id": 1, "capability_transition": _capability(
            0.5, 9.5, [(0.5, 9.5)] * 3, 95,
        )}]
        assert aggregate_portfolio_capability(portfolio, now=NOW).projected_full_independence is None

    def test_missing_investment_weights_as_one(self):
        portfolio = [
            {"id": 1, "capability_transition": _capability(1, 1, [(1, 1)] * 3, 30)},
            {"id": 2, "investment": "n/a", "capability_transition": _capability(1, 1, [(1, 1)] * 3, 50)},
        ]
        assert aggregate_portfolio_capability(portfolio, now=NOW).overall_independence == 40

    def test_nested_initial_investment_used(self):
        portfolio = [
            {"id": 1, "value_realization": {"investment": {"initial_investment": 3}},
             "capability_transition": _capability(1, 1, [(1, 1)] * 3, 20)},
            {"id": 2, "capability_transition": _capability(1, 1, [(1, 1)] * 3, 60)},
        ]
        assert calculate_overall_portfolio_independence(portfolio) == 30


class TestOverallIndependence:
    def test_zero_independence_excluded(self):
        portfolio = _portfolio() + [{"id": 4, "investment": 10_000, "capability_transition": _capability(
            1, 0, [(1, 0)] * 3, 0,
        )}]
        assert calculate_overall_portfolio_independence(portfolio) == 45

    def test_nothing_tracked(self):
        assert calculate_overall_portfolio_independence([{"id": 1}]) == 0


class TestStaffingProjection:
    def test_four_point_projection(self):
        points = generate_aggregate_staffing_projection(_portfolio(), now=NOW)
        assert [p.month for p in points] == ["2026-03", "2026-09", "2027-03", "2027-09"]
        assert [(p.vendor_fte, p.client_fte) for p in points] == [
            (4.0, 4.0), (2.0, 6.0), (0.8, 7.2), (0.8, 7.2),
        ]
        # Independence comes from summed FTE, not an average of percentages
        assert [p.independence_percentage for p in points] == [50, 75, 90, 90]

    def test_empty_when_nothing_tracked(self):
        assert generate_aggregate_staffing_projection([{"id": 1}], now=NOW) == []

    def test_single_use_case_timeline(self):
        staffing = _capability(2.4, 1.6, [(1.6, 2.4), (0.4, 3.6), (0.5, 3.5)], 40)["staffing"]
        points = project_independence_timeline(staffing, "2026-01")
        assert [p.month for p in points] == ["2026-01", "2026-07", "2027-01", "2027-07"]
        assert points[0].independence_percentage == 40
        assert points[1].independence_percentage == 60
        assert points[2].independence_percentage == 90
