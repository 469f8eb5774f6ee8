"""
告警：從資料快照產生候選告警，再跟目前的告警清單比對後決定要不要整批替換。

比對只看 (type, message, source)；內容沒變就保留原本的 id 與時間，
有任何差異就整批換成新產生的清單（所有 id 都會重發）。
"""
import datetime as dt
import logging
import math
import uuid
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel

from database import utcnow
from schemas import (
    MachineOut,
    MachineStatus,
    QualityCheckOut,
    QualityResult,
    WorkOrderOut,
    WorkOrderStatus,
)

logger = logging.getLogger(__name__)

DAY = dt.timedelta(days=1)

MACHINE_MONITOR = "Machine Monitor"
QUALITY_CONTROL = "Quality Control"
PRODUCTION_PLANNING = "Production Planning"


class AlertType(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class AlertCandidate(BaseModel):
    type: AlertType
    message: str
    source: Optional[str] = None

    def key(self):
        # 沒有來源和空字串來源視為不同
        return (self.type.value, self.message, self.source is None, self.source or "")


class Alert(AlertCandidate):
    id: str
    timestamp: dt.datetime


# ========== 產生候選告警 ==========
def days_overdue(due_date: dt.datetime, now: dt.datetime) -> int:
    """逾期天數，不滿一天也算一天"""
    return math.ceil((now - due_date) / DAY)


def generate_alerts(work_orders: Sequence[WorkOrderOut],
                    machines: Sequence[MachineOut],
                    quality_checks: Sequence[QualityCheckOut],
                    now: dt.datetime) -> List[AlertCandidate]:
    alerts: List[AlertCandidate] = []

    # 設備異常 / 保養
    for m in machines:
        if m.status == MachineStatus.ERROR:
            alerts.append(AlertCandidate(
                type=AlertType.ERROR,
                message=f"Machine {m.name} is in error state!",
                source=MACHINE_MONITOR,
            ))
    for m in machines:
        if m.status == MachineStatus.MAINTENANCE:
            alerts.append(AlertCandidate(
                type=AlertType.WARNING,
                message=f"Machine {m.name} requires maintenance",
                source=MACHINE_MONITOR,
            ))

    # 品檢不合格；找不到對應工單就略過
    orders = {wo.id: wo for wo in work_orders}
    for qc in quality_checks:
        if qc.result != QualityResult.FAIL:
            continue
        wo = orders.get(qc.work_order_id)
        if wo is None:
            continue
        alerts.append(AlertCandidate(
            type=AlertType.ERROR,
            message=f"Quality check failed for Work Order {wo.order_number} ({qc.check_type})",
            source=QUALITY_CONTROL,
        ))

    # 逾期工單
    for wo in work_orders:
        if wo.due_date < now and wo.status != WorkOrderStatus.COMPLETED:
            n = days_overdue(wo.due_date, now)
            alerts.append(AlertCandidate(
                type=AlertType.WARNING,
                message=f"Work Order {wo.order_number} is {n} day{'' if n == 1 else 's'} overdue!",
                source=PRODUCTION_PLANNING,
            ))

    return alerts


# ========== 告警清單 ==========
class AlertStore:
    """行程內的告警清單；不落地，重啟即清空"""

    def __init__(self, clock: Callable[[], dt.datetime] = utcnow,
                 id_factory: Callable[[], str] = lambda: str(uuid.uuid4())):
        self._clock = clock
        self._id_factory = id_factory
        self._alerts: List[Alert] = []

    @property
    def alerts(self) -> List[Alert]:
        return list(self._alerts)

    def _stamp(self, candidate: AlertCandidate, now: dt.datetime) -> Alert:
        return Alert(id=self._id_factory(), timestamp=now, **candidate.model_dump())

    def add(self, type: AlertType, message: str, source: Optional[str] = None) -> Alert:
        alert = self._stamp(AlertCandidate(type=type, message=message, source=source), self._clock())
        self._alerts = [alert] + self._alerts
        return alert

    def remove(self, id: str) -> None:
        self._alerts = [a for a in self._alerts if a.id != id]

    def clear_all(self) -> None:
        self._alerts = []

    def reconcile(self, candidates: Iterable[AlertCandidate]) -> bool:
        """內容相同就不動；回傳是否整批替換"""
        now = self._clock()
        fresh = [self._stamp(c, now) for c in candidates]

        new_keys = sorted(a.key() for a in fresh)
        old_keys = sorted(a.key() for a in self._alerts)
        if new_keys == old_keys:
            return False

        logger.info("告警清單更新：%d -> %d 筆", len(self._alerts), len(fresh))
        self._alerts = fresh
        return True

    def stats(self) -> Dict[str, int]:
        counts = {t: 0 for t in AlertType}
        for a in self._alerts:
            counts[a.type] += 1
        return {
            "total": len(self._alerts),
            "errors": counts[AlertType.ERROR],
            "warnings": counts[AlertType.WARNING],
            "info": counts[AlertType.INFO],
            "success": counts[AlertType.SUCCESS],
        }


# ========== 顯示用 ==========
def filter_alerts(alerts: Iterable[Alert], search: str = "", type: str = "all",
                  sort: str = "newest") -> List[Alert]:
    term = search.lower()
    matched = [
        a for a in alerts
        if (term in a.message.lower() or (a.source is not None and term in a.source.lower()))
        and (type == "all" or a.type == type)
    ]
    if sort == "oldest":
        return sorted(matched, key=lambda a: a.timestamp)
    if sort == "type":
        return sorted(matched, key=lambda a: a.type.value)
    return sorted(matched, key=lambda a: a.timestamp, reverse=True)


def format_age(timestamp: dt.datetime, now: dt.datetime) -> str:
    minutes = math.floor((now - timestamp).total_seconds() / 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    return timestamp.date().isoformat()
