import datetime as dt
from itertools import count

from plant import Snapshot
from schemas import MachineOut, OperatorOut, QualityCheckOut, WorkOrderOut

NOW = dt.datetime(2024, 6, 15, 12, 0, 0)
HOUR = dt.timedelta(hours=1)
DAY = dt.timedelta(days=1)

_ids = count(1)


def work_order(**kw) -> WorkOrderOut:
    n = next(_ids)
    data = dict(
        id=str(n),
        order_number=f"WO-{n:04d}",
        product_name="Bracket",
        quantity_planned=100,
        quantity_completed=0,
        status="pending",
        priority="medium",
        start_date=NOW - 2 * DAY,
        due_date=NOW + 5 * DAY,
        assigned_line="Line 1",
        created_at=NOW - DAY,
        updated_at=NOW - DAY,
    )
    data.update(kw)
    return WorkOrderOut(**data)


def machine(**kw) -> MachineOut:
    n = next(_ids)
    data = dict(
        id=str(n),
        name=f"CNC-{n}",
        type="CNC",
        status="running",
        efficiency=90,
        location="Bay A",
        created_at=NOW - 10 * DAY,
    )
    data.update(kw)
    return MachineOut(**data)


def operator(**kw) -> OperatorOut:
    n = next(_ids)
    data = dict(id=str(n), name=f"Operator {n}", employee_id=f"EMP{n:03d}", shift="day", skills=["welding"])
    data.update(kw)
    return OperatorOut(**data)


def quality_check(**kw) -> QualityCheckOut:
    n = next(_ids)
    data = dict(
        id=str(n),
        work_order_id="0",
        check_type="Dimensional",
        result="pass",
        inspector_id="1",
        checked_at=NOW - HOUR,
    )
    data.update(kw)
    return QualityCheckOut(**data)


def snapshot(work_orders=(), machines=(), operators=(), quality_checks=()) -> Snapshot:
    return Snapshot(tuple(work_orders), tuple(machines), tuple(operators), tuple(quality_checks))
