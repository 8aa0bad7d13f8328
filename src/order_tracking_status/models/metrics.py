from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class BusinessMetrics:
    totalOrders: int = 0
    todayOrders: int = 0
    pendingOrders: int = 0
    completedOrders: int = 0
    cancelledOrders: int = 0
    totalSpent: float = 0.0
    successRate: float = 0.0
    avgDeliveryTime: int = 0
    onTimePercentage: float = 0.0
    avgRating: float = 0.0
    revenueLast7Days: float = 0.0
    revenueLast30Days: float = 0.0
    orderTrend: str = "stable"          # up | down | stable
    deliveryPerformance: str = "poor"   # excellent | good | fair | poor
    availableCredits: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalOrders": self.totalOrders,
            "todayOrders": self.todayOrders,
            "pendingOrders": self.pendingOrders,
            "completedOrders": self.completedOrders,
            "cancelledOrders": self.cancelledOrders,
            "totalSpent": self.totalSpent,
            "successRate": self.successRate,
            "avgDeliveryTime": self.avgDeliveryTime,
            "onTimePercentage": self.onTimePercentage,
            "avgRating": self.avgRating,
            "revenueLast7Days": self.revenueLast7Days,
            "revenueLast30Days": self.revenueLast30Days,
            "orderTrend": self.orderTrend,
            "deliveryPerformance": self.deliveryPerformance,
            "availableCredits": self.availableCredits,
        }


@dataclass(frozen=True)
class OrderAnalytics:
    statusDistribution: dict[str, int] = field(default_factory=dict)
    timeDistribution: dict[str, int] = field(default_factory=dict)
    avgOrderValue: float = 0.0
    peakHours: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "statusDistribution": dict(self.statusDistribution),
            "timeDistribution": dict(self.timeDistribution),
            "avgOrderValue": self.avgOrderValue,
            "peakHours": list(self.peakHours),
        }
