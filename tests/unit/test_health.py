"""
건강도 점수 규칙 테스트.
"""

import pytest

from marketsync.services import health
from marketsync.services.comparator import DriftReport, DriftSeverity, severity_for
from marketsync.services.health import OverallStatus, SyncHealthStatus, SyncQuality


def _drift(score):
    return DriftReport(drift_score=score, severity=severity_for(score))


@pytest.mark.unit
class TestHealthScore:

    def test_perfect(self):
        assert health.score(SyncHealthStatus.SYNCED, _drift(0), SyncQuality.EXCELLENT) == 100

    def test_status_deductions(self):
        assert health.score(SyncHealthStatus.OUT_OF_SYNC) == 80
        assert health.score(SyncHealthStatus.NOT_SYNCED) == 60
        assert health.score(SyncHealthStatus.ERROR) == 50

    def test_drift_deductions(self):
        assert health.score(SyncHealthStatus.SYNCED, _drift(1.5)) == 100
        assert health.score(SyncHealthStatus.SYNCED, _drift(2)) == 90
        assert health.score(SyncHealthStatus.SYNCED, _drift(5)) == 80
        assert health.score(SyncHealthStatus.SYNCED, _drift(9)) == 70

    def test_quality_deductions(self):
        assert health.score(SyncHealthStatus.SYNCED, quality=SyncQuality.GOOD) == 95
        assert health.score(SyncHealthStatus.SYNCED, quality=SyncQuality.POOR) == 75

    def test_floor_at_zero(self):
        assert health.score(SyncHealthStatus.ERROR, _drift(10), SyncQuality.POOR) == 0


@pytest.mark.unit
class TestOverallStatus:

    def test_error_is_critical(self):
        assert health.overall_status(SyncHealthStatus.ERROR, _drift(0)) == OverallStatus.CRITICAL

    def test_not_synced(self):
        assert health.overall_status(SyncHealthStatus.NOT_SYNCED) == OverallStatus.NOT_SYNCED

    @pytest.mark.parametrize("score,expected", [
        (9, OverallStatus.CRITICAL),
        (6, OverallStatus.NEEDS_SYNC),
        (3, OverallStatus.MINOR_DRIFT),
        (1, OverallStatus.HEALTHY),
        (0, OverallStatus.HEALTHY),
    ])
    def test_drift_severity_mapping(self, score, expected):
        assert health.overall_status(SyncHealthStatus.SYNCED, _drift(score)) == expected

    def test_no_drift_is_healthy(self):
        assert health.overall_status(SyncHealthStatus.SYNCED) == OverallStatus.HEALTHY


@pytest.mark.unit
class TestRecommendations:

    def test_healthy(self):
        report = health.evaluate(SyncHealthStatus.SYNCED, _drift(0), SyncQuality.EXCELLENT)
        assert report.recommendations == ["Product sync status is healthy - continue monitoring"]
        assert report.action_items == [{"action": "monitor", "priority": "low", "description": "Continue monitoring sync status"}]

    def test_not_synced_action(self):
        report = health.evaluate(SyncHealthStatus.NOT_SYNCED)
        assert report.action_items[0]["action"] == "initial_sync"
        assert report.action_items[0]["priority"] == "urgent"

    def test_drift_adds_sync_updates(self):
        report = health.evaluate(SyncHealthStatus.SYNCED, _drift(6))
        assert report.action_items == [{
            "action": "sync_updates",
            "priority": "high",
            "description": "Update the marketplace listing with the latest product changes",
        }]
        assert "High priority sync recommended - significant differences found" in report.recommendations

    def test_error_urgent(self):
        report = health.evaluate(SyncHealthStatus.ERROR)
        assert report.action_items[0] == {
            "action": "resolve_errors",
            "priority": "urgent",
            "description": "Resolve sync errors and retry synchronization",
        }
        assert report.to_dict()["overall_status"] == "critical"

    def test_rule_tables_cover_every_member(self):
        for status in SyncHealthStatus:
            assert status in health.STATUS_DEDUCTIONS
            assert status in health.STATUS_ACTIONS
        for severity in DriftSeverity:
            assert severity in health.SEVERITY_OVERALL
