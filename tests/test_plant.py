import datetime as dt

import pytest

from plant import Plant
from schemas import (
    MachineCreate,
    OperatorCreate,
    QualityCheckCreate,
    WorkOrderCreate,
    WorkOrderUpdate,
)
from store import StoreError

T0 = dt.datetime(2024, 6, 1, 8, 0, 0)


class FailingStore:
    """每個操作都失敗的 store"""

    def __init__(self, code="db_error"):
        self.code = code

    def _fail(self, *args, **kwargs):
        raise StoreError("connection refused", code=self.code)

    list = insert = update = delete = _fail


def work_order_payload(number="WO-1", **kw):
    data = dict(
        order_number=number,
        product_name="Bracket",
        quantity_planned=100,
        start_date=T0,
        due_date=T0 + dt.timedelta(days=7),
        assigned_line="Line 1",
    )
    data.update(kw)
    return WorkOrderCreate(**data)


@pytest.fixture
def plant(store):
    return Plant(store)


@pytest.mark.asyncio
async def test_fetch_sets_items_and_clears_loading(plant, store):
    store.insert("work_orders", work_order_payload().model_dump())
    assert plant.work_orders.loading is True

    items = await plant.work_orders.fetch()
    assert [wo.order_number for wo in items] == ["WO-1"]
    assert items[0].id.isdigit()
    assert plant.work_orders.loading is False
    assert plant.work_orders.error is None


@pytest.mark.asyncio
async def test_fetch_failure_empties_collection():
    plant = Plant(FailingStore())
    await plant.load()
    assert plant.loading is False
    assert plant.work_orders.items == []
    assert plant.errors == {
        "work_orders": "connection refused",
        "machines": "connection refused",
        "operators": "connection refused",
        "quality_control": "connection refused",
    }


@pytest.mark.asyncio
async def test_create_update_delete(plant):
    await plant.load()
    first = await plant.work_orders.create(work_order_payload("WO-1"))
    second = await plant.work_orders.create(work_order_payload("WO-2", priority="urgent"))
    # 新增的放最前面
    assert [wo.order_number for wo in plant.work_orders.items] == ["WO-2", "WO-1"]
    assert second.priority == "urgent"

    updated = await plant.work_orders.update(first.id, WorkOrderUpdate(status="in_progress"))
    assert updated.status == "in_progress"
    assert updated.order_number == "WO-1"
    assert plant.work_orders.get(first.id).status == "in_progress"

    await plant.work_orders.delete(second.id)
    assert [wo.id for wo in plant.work_orders.items] == [first.id]
    assert plant.work_orders.get(second.id) is None


@pytest.mark.asyncio
async def test_failed_mutation_keeps_items(plant):
    await plant.load()
    await plant.work_orders.create(work_order_payload("WO-1"))
    before = list(plant.work_orders.items)

    with pytest.raises(StoreError) as exc:
        await plant.work_orders.create(work_order_payload("WO-1"))
    assert exc.value.code == "integrity_error"
    assert plant.work_orders.items == before
    assert plant.work_orders.error

    with pytest.raises(StoreError) as exc:
        await plant.work_orders.update("999", {"status": "completed"})
    assert exc.value.code == "not_found"
    assert plant.work_orders.items == before

    # 成功的操作會清掉錯誤訊息
    await plant.work_orders.update_production(before[0].id, 25)
    assert plant.work_orders.error is None
    assert plant.work_orders.get(before[0].id).quantity_completed == 25


@pytest.mark.asyncio
async def test_failed_delete_raises(plant):
    await plant.load()
    with pytest.raises(StoreError) as exc:
        await plant.machines.delete("not-a-number")
    assert exc.value.code == "22P02"
    assert plant.machines.error


@pytest.mark.asyncio
async def test_machine_work_order_assignment(plant):
    await plant.load()
    wo = await plant.work_orders.create(work_order_payload("WO-2024-001", product_name="Gear"))
    m = await plant.machines.create(MachineCreate(name="CNC-1", type="CNC", location="Bay A"))
    assert m.status == "idle"
    assert m.current_work_order_id is None

    m = await plant.machines.assign_work_order(m.id, wo.id)
    assert m.current_work_order_id == wo.id
    assert m.current_work_order == "WO-2024-001"
    assert m.current_work_order_product == "Gear"

    m = await plant.machines.set_status(m.id, "running")
    assert plant.machines.by_status("running") == [m]

    m = await plant.machines.assign_work_order(m.id, None)
    assert m.current_work_order_id is None
    assert m.current_work_order is None


@pytest.mark.asyncio
async def test_machine_denormalized_fields_refresh_on_fetch(plant):
    await plant.load()
    wo = await plant.work_orders.create(work_order_payload("WO-OLD"))
    m = await plant.machines.create(
        MachineCreate(name="CNC-1", type="CNC", location="Bay A", current_work_order_id=wo.id))
    assert m.current_work_order == "WO-OLD"

    await plant.work_orders.update(wo.id, {"order_number": "WO-NEW"})
    # 設備上的工單號是快照，要重新抓才會變
    assert plant.machines.get(m.id).current_work_order == "WO-OLD"
    await plant.machines.fetch()
    assert plant.machines.get(m.id).current_work_order == "WO-NEW"


@pytest.mark.asyncio
async def test_assign_invalid_work_order_id(plant):
    await plant.load()
    m = await plant.machines.create(MachineCreate(name="CNC-1", type="CNC", location="Bay A"))
    with pytest.raises(StoreError) as exc:
        await plant.machines.assign_work_order(m.id, "abc")
    assert exc.value.code == "22P02"
    assert plant.machines.get(m.id).current_work_order_id is None


@pytest.mark.asyncio
async def test_quality_check_inspector_snapshot(plant):
    await plant.load()
    op = await plant.operators.create(OperatorCreate(name="Alice", employee_id="EMP001", skills=["visual"]))
    qc = await plant.quality_checks.create(QualityCheckCreate(
        work_order_id="5", check_type="Visual", result="fail", inspector_id=op.id))

    assert qc.inspector.name == "Alice"
    assert qc.inspector_id == op.id
    assert qc.notes == ""
    assert qc.checked_at is not None
    assert plant.quality_checks.for_work_order("5") == [qc]

    await plant.operators.update(op.id, {"name": "Alice Chen"})
    assert plant.quality_checks.get(qc.id).inspector.name == "Alice"


@pytest.mark.asyncio
async def test_operator_helpers(plant):
    await plant.load()
    await plant.operators.create(OperatorCreate(name="Zed", employee_id="E2", shift="night"))
    await plant.operators.create(OperatorCreate(name="Amy", employee_id="E1", current_assignment="Line 2"))
    await plant.operators.fetch()

    assert [op.name for op in plant.operators.items] == ["Amy", "Zed"]
    assert [op.name for op in plant.operators.by_shift("night")] == ["Zed"]
    assert [op.name for op in plant.operators.available()] == ["Zed"]


@pytest.mark.asyncio
async def test_load_and_snapshot(plant, store):
    store.insert("work_orders", work_order_payload().model_dump())
    store.insert("machines", dict(name="CNC-1", type="CNC", location="Bay A", status="error"))
    assert plant.loading is True

    await plant.load()
    assert plant.loading is False
    assert plant.errors == {}

    snap = plant.snapshot()
    assert len(snap.work_orders) == 1
    assert snap.machines[0].status == "error"
    assert snap.operators == ()
    assert snap.quality_checks == ()
