import datetime as dt
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveInt,
    StringConstraints,
)


def as_naive_utc(value: dt.datetime) -> dt.datetime:
    """帶時區的時間一律換成 UTC naive，跟資料庫欄位一致"""
    if value.tzinfo is not None:
        return value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


UtcDateTime = Annotated[dt.datetime, AfterValidator(as_naive_utc)]
Required = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Efficiency = Annotated[float, Field(ge=0, le=100)]


class WorkOrderStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MachineStatus(str, Enum):
    RUNNING = "running"
    IDLE = "idle"
    MAINTENANCE = "maintenance"
    ERROR = "error"


class Shift(str, Enum):
    DAY = "day"
    NIGHT = "night"
    SWING = "swing"


class QualityResult(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"


class Schema(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)


def _str_id(value: Any) -> Optional[str]:
    return None if value is None else str(value)


# ---------- 工單 ----------
class WorkOrderCreate(Schema):
    order_number: Required
    product_name: Required
    quantity_planned: PositiveInt
    quantity_completed: NonNegativeInt = 0
    status: WorkOrderStatus = WorkOrderStatus.PENDING
    priority: Priority = Priority.MEDIUM
    start_date: UtcDateTime
    due_date: UtcDateTime
    assigned_line: Required


class WorkOrderUpdate(Schema):
    order_number: Optional[Required] = None
    product_name: Optional[Required] = None
    quantity_planned: Optional[PositiveInt] = None
    quantity_completed: Optional[NonNegativeInt] = None
    status: Optional[WorkOrderStatus] = None
    priority: Optional[Priority] = None
    start_date: Optional[UtcDateTime] = None
    due_date: Optional[UtcDateTime] = None
    assigned_line: Optional[Required] = None


class WorkOrderOut(Schema):
    id: str
    order_number: str
    product_name: str
    quantity_planned: int
    # 不限制 <= quantity_planned，超產時進度可超過 100%
    quantity_completed: int = 0
    status: WorkOrderStatus
    priority: Priority
    start_date: UtcDateTime
    due_date: UtcDateTime
    assigned_line: str
    created_at: Optional[UtcDateTime] = None
    updated_at: Optional[UtcDateTime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WorkOrderOut":
        return cls(**{**row, "id": str(row["id"])})


# ---------- 作業員 ----------
class OperatorCreate(Schema):
    name: Required
    employee_id: Required
    shift: Shift = Shift.DAY
    skills: List[str] = Field(default_factory=list)
    current_assignment: Optional[str] = None


class OperatorUpdate(Schema):
    name: Optional[Required] = None
    employee_id: Optional[Required] = None
    shift: Optional[Shift] = None
    skills: Optional[List[str]] = None
    current_assignment: Optional[str] = None


class OperatorOut(Schema):
    id: str
    name: str
    employee_id: str
    shift: Shift
    skills: List[str] = Field(default_factory=list)
    current_assignment: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OperatorOut":
        return cls(
            id=str(row["id"]),
            name=row["name"],
            employee_id=row["employee_id"],
            shift=row["shift"],
            skills=row.get("skills") or [],
            current_assignment=row.get("current_assignment") or None,
        )


# ---------- 設備 ----------
class MachineCreate(Schema):
    name: Required
    type: Required
    status: MachineStatus = MachineStatus.IDLE
    current_work_order_id: Optional[str] = None
    efficiency: Efficiency = 0
    last_maintenance: Optional[UtcDateTime] = None
    location: Required


class MachineUpdate(Schema):
    name: Optional[Required] = None
    type: Optional[Required] = None
    status: Optional[MachineStatus] = None
    current_work_order_id: Optional[str] = None
    efficiency: Optional[Efficiency] = None
    last_maintenance: Optional[UtcDateTime] = None
    location: Optional[Required] = None


class MachineOut(Schema):
    id: str
    name: str
    type: str
    status: MachineStatus
    # 以下三欄是讀取當下從工單帶出的快照，工單改了要重新抓才會同步
    current_work_order_id: Optional[str] = None
    current_work_order: Optional[str] = None
    current_work_order_product: Optional[str] = None
    efficiency: float = 0
    last_maintenance: Optional[UtcDateTime] = None
    location: str
    created_at: Optional[UtcDateTime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MachineOut":
        wo = row.get("work_orders") or {}
        return cls(
            id=str(row["id"]),
            name=row["name"],
            type=row["type"],
            status=row["status"],
            current_work_order_id=_str_id(row.get("current_work_order")),
            current_work_order=wo.get("order_number"),
            current_work_order_product=wo.get("product_name"),
            efficiency=row["efficiency"],
            last_maintenance=row.get("last_maintenance"),
            location=row["location"],
            created_at=row.get("created_at"),
        )


class MachineStatusUpdate(Schema):
    status: MachineStatus


class MachineAssignment(Schema):
    work_order_id: Optional[str] = None


class ProductionUpdate(Schema):
    quantity_completed: NonNegativeInt


# ---------- 品檢 ----------
class QualityCheckCreate(Schema):
    work_order_id: Required
    check_type: Required
    result: QualityResult = QualityResult.PENDING
    inspector_id: Required
    notes: Optional[str] = None
    checked_at: Optional[UtcDateTime] = None


class QualityCheckUpdate(Schema):
    work_order_id: Optional[Required] = None
    check_type: Optional[Required] = None
    result: Optional[QualityResult] = None
    inspector_id: Optional[Required] = None
    notes: Optional[str] = None
    checked_at: Optional[UtcDateTime] = None


class QualityCheckOut(Schema):
    id: str
    work_order_id: str
    check_type: str
    result: QualityResult
    inspector_id: str
    # 建立/讀取當下的作業員快照，不會跟著作業員資料變動
    inspector: Optional[OperatorOut] = None
    notes: str = ""
    checked_at: UtcDateTime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QualityCheckOut":
        op = row.get("operators")
        return cls(
            id=str(row["id"]),
            work_order_id=str(row["work_order_id"]),
            check_type=row["check_type"],
            result=row["result"],
            inspector_id=str(row["inspector_id"]),
            inspector=OperatorOut.from_row(op) if op else None,
            notes=row.get("notes") or "",
            checked_at=row["checked_at"],
        )
