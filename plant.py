"""
記憶體中的四個資料集合（工單、設備、作業員、品檢）。

每個集合從 TableStore 抓資料並保存成 pydantic 物件清單；新增/修改/刪除
都先打到資料庫，成功後才更新本地清單（不做樂觀更新）。
資料庫呼叫丟到 threadpool，是唯一會讓出 event loop 的地方。
"""
import asyncio
import logging
from typing import Any, Dict, Generic, List, NamedTuple, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from schemas import (
    MachineOut,
    OperatorOut,
    QualityCheckOut,
    WorkOrderOut,
)
from store import StoreError, TableStore, parse_id

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _int_or_none(value: Optional[str]) -> Optional[int]:
    return parse_id(value) if value else None


class Collection(Generic[T]):
    table: str
    label: str
    record: Type[T]
    order_by: Optional[str] = "created_at"
    ascending: bool = False
    embed: Tuple[str, ...] = ()

    def __init__(self, store: TableStore):
        self.store = store
        self.items: List[T] = []
        self.loading = True
        self.error: Optional[str] = None

    # payload -> 資料表欄位；子類別可覆寫做欄位轉換
    def to_row(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return data

    def from_row(self, row: Dict[str, Any]) -> T:
        return self.record.from_row(row)

    @staticmethod
    def _dump(payload) -> Dict[str, Any]:
        if isinstance(payload, BaseModel):
            return payload.model_dump(exclude_unset=True)
        return dict(payload)

    async def fetch(self) -> List[T]:
        self.loading = True
        self.error = None
        try:
            rows = await run_in_threadpool(
                self.store.list, self.table,
                order_by=self.order_by, ascending=self.ascending, embed=self.embed,
            )
            self.items = [self.from_row(r) for r in rows]
            logger.info("抓取%s完成：%d 筆", self.label, len(self.items))
        except StoreError as e:
            # 抓取失敗時視為空集合，直到重新抓取
            logger.error("抓取%s失敗：%s (code=%s)", self.label, e.message, e.code)
            self.error = e.message
            self.items = []
        finally:
            self.loading = False
        return self.items

    async def create(self, payload) -> T:
        try:
            row = self.to_row(self._dump(payload))
            created = await run_in_threadpool(self.store.insert, self.table, row, embed=self.embed)
        except StoreError as e:
            self._failed("新增", e)
            raise
        item = self.from_row(created)
        self.error = None
        self.items = [item] + self.items
        return item

    async def update(self, id: str, changes) -> T:
        try:
            row = self.to_row(self._dump(changes))
            updated = await run_in_threadpool(self.store.update, self.table, id, row, embed=self.embed)
        except StoreError as e:
            self._failed("更新", e)
            raise
        item = self.from_row(updated)
        self.error = None
        self.items = [item if x.id == item.id else x for x in self.items]
        return item

    async def delete(self, id: str) -> None:
        try:
            await run_in_threadpool(self.store.delete, self.table, id)
        except StoreError as e:
            self._failed("刪除", e)
            raise
        self.error = None
        self.items = [x for x in self.items if x.id != str(id)]

    def get(self, id: str) -> Optional[T]:
        return next((x for x in self.items if x.id == str(id)), None)

    def _failed(self, action: str, e: StoreError):
        logger.error("%s%s失敗：%s (code=%s)", action, self.label, e.message, e.code)
        self.error = e.message


class WorkOrders(Collection[WorkOrderOut]):
    table = "work_orders"
    label = "工單"
    record = WorkOrderOut

    async def update_production(self, id: str, quantity_completed: int) -> WorkOrderOut:
        """設備清單上直接輸入的生產數量"""
        return await self.update(id, {"quantity_completed": quantity_completed})


class Machines(Collection[MachineOut]):
    table = "machines"
    label = "設備"
    record = MachineOut
    embed = ("work_orders",)

    def to_row(self, data):
        row = dict(data)
        # 有送 current_work_order_id 才動（None / 空字串代表解除指派）
        if "current_work_order_id" in row:
            row["current_work_order"] = _int_or_none(row.pop("current_work_order_id"))
        return row

    async def set_status(self, id: str, status: str) -> MachineOut:
        return await self.update(id, {"status": status})

    async def assign_work_order(self, id: str, work_order_id: Optional[str]) -> MachineOut:
        return await self.update(id, {"current_work_order_id": work_order_id})

    def by_status(self, status: str) -> List[MachineOut]:
        return [m for m in self.items if m.status == status]


class Operators(Collection[OperatorOut]):
    table = "operators"
    label = "作業員"
    record = OperatorOut
    order_by = "name"
    ascending = True

    def by_shift(self, shift: str) -> List[OperatorOut]:
        return [op for op in self.items if op.shift == shift]

    def available(self) -> List[OperatorOut]:
        """目前沒有指派的作業員"""
        return [op for op in self.items if not op.current_assignment]


class QualityChecks(Collection[QualityCheckOut]):
    table = "quality_control"
    label = "品檢"
    record = QualityCheckOut
    order_by = "checked_at"
    embed = ("operators",)

    def to_row(self, data):
        row = dict(data)
        if "inspector_id" in row:
            row["inspector_id"] = parse_id(row["inspector_id"])
        return row

    def for_work_order(self, work_order_id: str) -> List[QualityCheckOut]:
        return [qc for qc in self.items if qc.work_order_id == str(work_order_id)]


class Snapshot(NamedTuple):
    work_orders: Tuple[WorkOrderOut, ...]
    machines: Tuple[MachineOut, ...]
    operators: Tuple[OperatorOut, ...]
    quality_checks: Tuple[QualityCheckOut, ...]


class Plant:
    """四個集合的擁有者，提供合併的 loading 旗標與一致的快照"""

    def __init__(self, store: TableStore):
        self.work_orders = WorkOrders(store)
        self.machines = Machines(store)
        self.operators = Operators(store)
        self.quality_checks = QualityChecks(store)

    @property
    def collections(self) -> Tuple[Collection, ...]:
        return (self.work_orders, self.machines, self.operators, self.quality_checks)

    @property
    def loading(self) -> bool:
        return any(c.loading for c in self.collections)

    @property
    def errors(self) -> Dict[str, str]:
        return {c.table: c.error for c in self.collections if c.error}

    async def load(self) -> None:
        await asyncio.gather(*(c.fetch() for c in self.collections))

    def snapshot(self) -> Snapshot:
        return Snapshot(
            work_orders=tuple(self.work_orders.items),
            machines=tuple(self.machines.items),
            operators=tuple(self.operators.items),
            quality_checks=tuple(self.quality_checks.items),
        )
