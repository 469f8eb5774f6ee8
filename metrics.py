"""
KPI 計算：把四個資料集合的快照折算成 OEE、稼動率、良率、停機等指標。

全部是純函式，不抓資料、不改狀態、不保留歷史；每次請求重新計算。
小數一律「四捨五入」到一位（ROUND_HALF_UP，不用 Python 內建的銀行家捨入）。
"""
import datetime as dt
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, NamedTuple, Optional, Sequence

from pydantic import BaseModel

from plant import Snapshot
from schemas import (
    MachineOut,
    MachineStatus,
    OperatorOut,
    QualityCheckOut,
    QualityResult,
    WorkOrderOut,
    WorkOrderStatus,
)

DAY = dt.timedelta(days=1)
RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DOWNTIME_MINUTES_PER_PERCENT = 4.8  # 粗估換算，不是實測停機時間
DOWN_STATUSES = (MachineStatus.ERROR, MachineStatus.MAINTENANCE)


# ========== 捨入 ==========
def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round1(value: float) -> float:
    return round_half_up(value, 1)


def round_int(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ========== 單一指標（未捨入） ==========
def availability(machines: Sequence[MachineOut]) -> float:
    """運轉中設備 / 全部設備 × 100；沒有設備為 0"""
    if not machines:
        return 0.0
    running = sum(1 for m in machines if m.status == MachineStatus.RUNNING)
    return running * 100 / len(machines)


def performance(machines: Sequence[MachineOut]) -> float:
    """平均設備效率；沒有設備為 0"""
    if not machines:
        return 0.0
    return sum(m.efficiency for m in machines) / len(machines)


def quality_rate(checks: Sequence[QualityCheckOut], empty: float) -> float:
    if not checks:
        return empty
    passed = sum(1 for qc in checks if qc.result == QualityResult.PASS)
    return passed * 100 / len(checks)


def quality_rate_optimistic(checks: Sequence[QualityCheckOut]) -> float:
    """沒有品檢紀錄時視為 100（儀表板用）"""
    return quality_rate(checks, empty=100.0)


def quality_rate_strict(checks: Sequence[QualityCheckOut]) -> float:
    """沒有品檢紀錄時視為 0（分析頁用）"""
    return quality_rate(checks, empty=0.0)


def oee(availability_pct: float, performance_pct: float, quality_pct: float) -> float:
    """OEE = 稼動率 × 效率 × 良率，各自是百分比，結果捨入到一位"""
    return round1(availability_pct * performance_pct * quality_pct / 10000)


def production_efficiency(work_orders: Sequence[WorkOrderOut]) -> float:
    """完成量 / 計畫量 × 100；超產不截斷，可以超過 100"""
    planned = sum(wo.quantity_planned for wo in work_orders)
    if planned <= 0:
        return 0.0
    completed = sum(wo.quantity_completed for wo in work_orders)
    return completed * 100 / planned


def downtime_percentage(machines: Sequence[MachineOut]) -> float:
    if not machines:
        return 0.0
    down = sum(1 for m in machines if m.status in DOWN_STATUSES)
    return down * 100 / len(machines)


def production_rate(work_orders: Sequence[WorkOrderOut], now: dt.datetime) -> int:
    """近 24 小時內完工工單的完成量 / 24，當作每小時產出"""
    since = now - DAY
    recent = sum(
        wo.quantity_completed
        for wo in work_orders
        if wo.status == WorkOrderStatus.COMPLETED and wo.updated_at is not None and wo.updated_at >= since
    )
    return round_int(recent / 24)


def downtime_minutes(downtime_pct: float) -> int:
    return round_int(downtime_pct * DOWNTIME_MINUTES_PER_PERCENT)


def active_alert_count(machines: Sequence[MachineOut], checks: Sequence[QualityCheckOut]) -> int:
    errors = sum(1 for m in machines if m.status == MachineStatus.ERROR)
    failed = sum(1 for qc in checks if qc.result == QualityResult.FAIL)
    return errors + failed


def active_work_orders(work_orders: Sequence[WorkOrderOut]) -> int:
    return sum(1 for wo in work_orders if wo.status != WorkOrderStatus.COMPLETED)


def kpi_color(value: float, good: float, fair: float, higher_is_better: bool = True) -> str:
    if higher_is_better:
        return "green" if value >= good else "yellow" if value >= fair else "red"
    return "green" if value <= good else "yellow" if value <= fair else "red"


# ========== 時間區間 ==========
class DateWindow(NamedTuple):
    start: dt.datetime
    end: dt.datetime

    def contains(self, ts: Optional[dt.datetime]) -> bool:
        return ts is not None and self.start <= ts <= self.end


def start_of_day(ts: dt.datetime) -> dt.datetime:
    return dt.datetime.combine(ts.date(), dt.time.min)


def end_of_day(ts: dt.datetime) -> dt.datetime:
    return dt.datetime.combine(ts.date(), dt.time.max)


def date_window(range_key: str, now: dt.datetime,
                start: Optional[dt.datetime] = None,
                end: Optional[dt.datetime] = None) -> DateWindow:
    """
    7d / 30d / 90d：N 天前 00:00 到今天 23:59:59.999999。
    custom：沒給的邊界分別回退到 30 天前 00:00 / 今天結束。其他值一律當 30d。
    """
    default_start = start_of_day(now - 30 * DAY)
    if range_key == "custom":
        return DateWindow(
            start=start_of_day(start) if start else default_start,
            end=end_of_day(end) if end else end_of_day(now),
        )
    days = RANGE_DAYS.get(range_key)
    if days is None:
        return DateWindow(default_start, end_of_day(now))
    return DateWindow(start_of_day(now - days * DAY), end_of_day(now))


def window_work_orders(work_orders: Sequence[WorkOrderOut], window: DateWindow):
    return [wo for wo in work_orders if window.contains(wo.created_at)]


def window_quality_checks(checks: Sequence[QualityCheckOut], window: DateWindow):
    return [qc for qc in checks if window.contains(qc.checked_at)]


# ========== 彙總 ==========
class DashboardMetrics(BaseModel):
    oee: float
    active_work_orders: int
    production_rate: int
    quality_rate: float
    downtime_minutes: int
    downtime_percentage: float
    active_alerts: int
    availability: float
    avg_efficiency: float
    colors: Dict[str, str]


class AnalyticsKPIs(BaseModel):
    start: dt.datetime
    end: dt.datetime
    oee: float
    availability: float
    performance: float
    quality_rate: float
    production_efficiency: float
    downtime_percentage: float
    active_work_orders: int
    completed_orders: int
    total_orders: int
    quality_checks: int
    active_operators: int
    total_operators: int


def _active_operators(operators: Sequence[OperatorOut]) -> int:
    return sum(1 for op in operators if op.current_assignment)


def dashboard_metrics(snapshot: Snapshot, now: dt.datetime) -> DashboardMetrics:
    """儀表板：全部資料不分區間，良率沒有資料時視為 100"""
    machines = snapshot.machines
    avail = availability(machines)
    perf = performance(machines)
    quality = quality_rate_optimistic(snapshot.quality_checks)
    down_pct = downtime_percentage(machines)

    values = {
        "oee": oee(avail, perf, quality),
        "active_work_orders": active_work_orders(snapshot.work_orders),
        "production_rate": production_rate(snapshot.work_orders, now),
        "quality_rate": round1(quality),
        "downtime_minutes": downtime_minutes(down_pct),
        "downtime_percentage": round1(down_pct),
        "active_alerts": active_alert_count(machines, snapshot.quality_checks),
        "availability": round1(avail),
        "avg_efficiency": round1(perf),
    }
    colors = {
        "oee": kpi_color(values["oee"], 85, 70),
        "production_rate": kpi_color(values["production_rate"], 100, 50),
        "quality_rate": kpi_color(values["quality_rate"], 95, 90),
        "downtime_minutes": kpi_color(values["downtime_minutes"], 30, 120, higher_is_better=False),
        "active_alerts": kpi_color(values["active_alerts"], 0, 2, higher_is_better=False),
    }
    return DashboardMetrics(**values, colors=colors)


def analytics_kpis(snapshot: Snapshot, window: DateWindow) -> AnalyticsKPIs:
    """
    分析頁：工單依 created_at、品檢依 checked_at 篩進區間；
    設備與作業員是目前狀態，不分區間。良率沒有資料時為 0。
    """
    machines = snapshot.machines
    work_orders = window_work_orders(snapshot.work_orders, window)
    checks = window_quality_checks(snapshot.quality_checks, window)
    avail = availability(machines)
    perf = performance(machines)
    quality = quality_rate_strict(checks)

    return AnalyticsKPIs(
        start=window.start,
        end=window.end,
        oee=oee(avail, perf, quality),
        availability=round1(avail),
        performance=round1(perf),
        quality_rate=round1(quality),
        production_efficiency=round1(production_efficiency(work_orders)),
        downtime_percentage=round1(downtime_percentage(machines)),
        active_work_orders=active_work_orders(work_orders),
        completed_orders=sum(1 for wo in work_orders if wo.status == WorkOrderStatus.COMPLETED),
        total_orders=len(work_orders),
        quality_checks=len(checks),
        active_operators=_active_operators(snapshot.operators),
        total_operators=len(snapshot.operators),
    )
