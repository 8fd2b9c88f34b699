"""
동기화 건강도 점수 (0-100)와 권장 조치.

규칙은 모두 enum 키 기반 dict 테이블이며, enum 멤버가 추가되었는데 규칙이 없으면
모듈 import 시점에 실패합니다.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from marketsync.services.comparator import DriftReport, DriftSeverity


class SyncHealthStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    OUT_OF_SYNC = "out_of_sync"
    NOT_SYNCED = "not_synced"
    ERROR = "error"


class SyncQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class OverallStatus(str, Enum):
    CRITICAL = "critical"
    NOT_SYNCED = "not_synced"
    NEEDS_SYNC = "needs_sync"
    MINOR_DRIFT = "minor_drift"
    HEALTHY = "healthy"


class Priority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


STATUS_DEDUCTIONS: dict[SyncHealthStatus, int] = {
    SyncHealthStatus.SYNCED: 0,
    SyncHealthStatus.PENDING: 0,
    SyncHealthStatus.OUT_OF_SYNC: 20,
    SyncHealthStatus.NOT_SYNCED: 40,
    SyncHealthStatus.ERROR: 50,
}

QUALITY_DEDUCTIONS: dict[SyncQuality, int] = {
    SyncQuality.EXCELLENT: 0,
    SyncQuality.GOOD: 5,
    SyncQuality.FAIR: 15,
    SyncQuality.POOR: 25,
}

# drift_score 하한 -> 감점 (높은 순서로 평가)
DRIFT_DEDUCTIONS: list[tuple[float, int]] = [(8, 30), (5, 20), (2, 10)]

# 상태가 overall status를 강제하는 경우 (None이면 drift severity로 결정)
STATUS_OVERRIDES: dict[SyncHealthStatus, OverallStatus | None] = {
    SyncHealthStatus.ERROR: OverallStatus.CRITICAL,
    SyncHealthStatus.NOT_SYNCED: OverallStatus.NOT_SYNCED,
    SyncHealthStatus.SYNCED: None,
    SyncHealthStatus.PENDING: None,
    SyncHealthStatus.OUT_OF_SYNC: None,
}

SEVERITY_OVERALL: dict[DriftSeverity, OverallStatus] = {
    DriftSeverity.CRITICAL: OverallStatus.CRITICAL,
    DriftSeverity.HIGH: OverallStatus.NEEDS_SYNC,
    DriftSeverity.MEDIUM: OverallStatus.MINOR_DRIFT,
    DriftSeverity.LOW: OverallStatus.HEALTHY,
    DriftSeverity.NONE: OverallStatus.HEALTHY,
}

SEVERITY_PRIORITY: dict[DriftSeverity, Priority] = {
    DriftSeverity.CRITICAL: Priority.URGENT,
    DriftSeverity.HIGH: Priority.HIGH,
    DriftSeverity.MEDIUM: Priority.NORMAL,
    DriftSeverity.LOW: Priority.LOW,
    DriftSeverity.NONE: Priority.LOW,
}

# 상태별 액션 아이템 (action, priority, description)
STATUS_ACTIONS: dict[SyncHealthStatus, tuple[str, Priority, str] | None] = {
    SyncHealthStatus.NOT_SYNCED: ("initial_sync", Priority.URGENT, "Sync this product to the marketplace for the first time"),
    SyncHealthStatus.ERROR: ("resolve_errors", Priority.URGENT, "Resolve sync errors and retry synchronization"),
    SyncHealthStatus.SYNCED: None,
    SyncHealthStatus.PENDING: None,
    SyncHealthStatus.OUT_OF_SYNC: None,
}

STATUS_RECOMMENDATIONS: dict[SyncHealthStatus, str | None] = {
    SyncHealthStatus.NOT_SYNCED: "Product has not been synced to this marketplace yet",
    SyncHealthStatus.ERROR: "Last sync attempt failed - review the error and retry",
    SyncHealthStatus.OUT_OF_SYNC: "External listing could not be found - consider re-creating it",
    SyncHealthStatus.PENDING: "Sync is pending - check again after the next sync run",
    SyncHealthStatus.SYNCED: None,
}

HEALTHY_RECOMMENDATION = "Product sync status is healthy - continue monitoring"


def _check_complete() -> None:
    tables = [
        (SyncHealthStatus, STATUS_DEDUCTIONS),
        (SyncHealthStatus, STATUS_OVERRIDES),
        (SyncHealthStatus, STATUS_ACTIONS),
        (SyncHealthStatus, STATUS_RECOMMENDATIONS),
        (SyncQuality, QUALITY_DEDUCTIONS),
        (DriftSeverity, SEVERITY_OVERALL),
        (DriftSeverity, SEVERITY_PRIORITY),
    ]
    for enum_cls, table in tables:
        missing = [member for member in enum_cls if member not in table]
        if missing:
            raise RuntimeError(f"Health rule table for {enum_cls.__name__} is missing {missing}")


_check_complete()


def score(status: SyncHealthStatus, drift: DriftReport | None = None, quality: SyncQuality | None = None) -> int:
    """100점에서 상태/drift/품질 감점 후 0 하한"""
    total = 100 - STATUS_DEDUCTIONS[status]
    if drift is not None:
        for floor, deduction in DRIFT_DEDUCTIONS:
            if drift.drift_score >= floor:
                total -= deduction
                break
    if quality is not None:
        total -= QUALITY_DEDUCTIONS[quality]
    return max(0, min(100, total))


def overall_status(status: SyncHealthStatus, drift: DriftReport | None = None) -> OverallStatus:
    forced = STATUS_OVERRIDES[status]
    if forced is not None:
        return forced
    if drift is None:
        return OverallStatus.HEALTHY
    return SEVERITY_OVERALL[drift.severity]


def recommendations(status: SyncHealthStatus, drift: DriftReport | None = None) -> list[str]:
    items: list[str] = []
    text = STATUS_RECOMMENDATIONS[status]
    if text:
        items.append(text)
    if drift is not None and drift.needs_sync:
        items.append(drift.recommendation)
    if not items:
        items.append(HEALTHY_RECOMMENDATION)
    return list(dict.fromkeys(items))


def action_items(status: SyncHealthStatus, drift: DriftReport | None = None) -> list[dict[str, str]]:
    actions: list[dict[str, str]] = []
    rule = STATUS_ACTIONS[status]
    if rule is not None:
        action, priority, description = rule
        actions.append({"action": action, "priority": priority.value, "description": description})
    if drift is not None and drift.needs_sync:
        actions.append({
            "action": "sync_updates",
            "priority": SEVERITY_PRIORITY[drift.severity].value,
            "description": "Update the marketplace listing with the latest product changes",
        })
    if not actions:
        actions.append({"action": "monitor", "priority": Priority.LOW.value, "description": "Continue monitoring sync status"})
    return actions


@dataclass
class HealthReport:
    status: SyncHealthStatus
    score: int
    overall_status: OverallStatus
    recommendations: list[str] = field(default_factory=list)
    action_items: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "health_score": self.score,
            "overall_status": self.overall_status.value,
            "recommendations": self.recommendations,
            "action_items": self.action_items,
        }


def evaluate(status: SyncHealthStatus, drift: DriftReport | None = None, quality: SyncQuality | None = None) -> HealthReport:
    return HealthReport(
        status=status,
        score=score(status, drift, quality),
        overall_status=overall_status(status, drift),
        recommendations=recommendations(status, drift),
        action_items=action_items(status, drift),
    )
