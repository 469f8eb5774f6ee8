"""分析頁圖表用的序列：每日品檢趨勢、工單狀態分布、設備效率排行"""
import datetime as dt
from collections import Counter, defaultdict
from typing import Dict, List, Sequence

from metrics import DateWindow, round_int
from schemas import (
    MachineOut,
    QualityCheckOut,
    QualityResult,
    WorkOrderOut,
    WorkOrderStatus,
)


def quality_trend(checks: Sequence[QualityCheckOut], window: DateWindow) -> List[Dict]:
    """
    區間內每一天一筆（沒有品檢的日子也列出，pass_rate 為 0）：
      {date, total, passed, failed, pending, pass_rate}
    """
    by_day = defaultdict(Counter)
    for qc in checks:
        if window.contains(qc.checked_at):
            by_day[qc.checked_at.date()][qc.result] += 1

    items = []
    day = window.start.date()
    while day <= window.end.date():
        c = by_day.get(day, Counter())
        total = sum(c.values())
        passed = c[QualityResult.PASS.value]
        items.append({
            "date": day.isoformat(),
            "total": total,
            "passed": passed,
            "failed": c[QualityResult.FAIL.value],
            "pending": c[QualityResult.PENDING.value],
            "pass_rate": round_int(passed * 100 / total) if total else 0,
        })
        day += dt.timedelta(days=1)
    return items


def average_pass_rate(trend: Sequence[Dict]) -> int:
    if not trend:
        return 0
    return round_int(sum(d["pass_rate"] for d in trend) / len(trend))


def status_breakdown(work_orders: Sequence[WorkOrderOut]) -> List[Dict]:
    counts = Counter(wo.status for wo in work_orders)
    return [{"status": s.value, "count": counts[s.value]} for s in WorkOrderStatus if counts[s.value]]


def completion_rate(work_orders: Sequence[WorkOrderOut]) -> int:
    if not work_orders:
        return 0
    completed = sum(1 for wo in work_orders if wo.status == WorkOrderStatus.COMPLETED)
    return round_int(completed * 100 / len(work_orders))


def efficiency_ranking(machines: Sequence[MachineOut]) -> Dict:
    """效率由高到低；另外統計 >= 90 與 < 75 的台數"""
    ranked = sorted(machines, key=lambda m: m.efficiency, reverse=True)
    return {
        "items": [{"id": m.id, "name": m.name, "status": m.status, "efficiency": m.efficiency} for m in ranked],
        "average": round_int(sum(m.efficiency for m in ranked) / len(ranked)) if ranked else 0,
        "high_performers": sum(1 for m in ranked if m.efficiency >= 90),
        "needs_attention": sum(1 for m in ranked if m.efficiency < 75),
    }
