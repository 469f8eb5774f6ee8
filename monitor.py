# monitor.py
# 告警監控：資料載入完成後產生一次告警，之後每隔固定秒數重新計算
import asyncio
import contextlib
import datetime as dt
import logging
from typing import Awaitable, Callable, Optional

from alerts import AlertStore, generate_alerts
from database import utcnow
from plant import Plant

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    固定間隔重複呼叫 callback 的 asyncio 工作。
    sleep 可以替換，測試時不用真的等。
    """

    def __init__(self, interval: float, callback: Callable[[], object],
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.interval = interval
        self.callback = callback
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self):
        while True:
            await self._sleep(self.interval)
            try:
                self.callback()
            except Exception:
                # 單次失敗不停掉排程，下一輪照跑
                logger.exception("排程工作執行失敗")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        """取消並等工作真正結束"""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class AlertMonitor:
    def __init__(self, plant: Plant, alert_store: AlertStore, interval: float = 60.0,
                 clock: Callable[[], dt.datetime] = utcnow,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.plant = plant
        self.alert_store = alert_store
        self.clock = clock
        self.task = PeriodicTask(interval, self.refresh, sleep=sleep)

    def refresh(self) -> bool:
        """用最新快照整批重算告警；資料還在載入就先不動"""
        if self.plant.loading:
            logger.debug("資料載入中，略過告警計算")
            return False
        snap = self.plant.snapshot()
        candidates = generate_alerts(snap.work_orders, snap.machines, snap.quality_checks, self.clock())
        return self.alert_store.reconcile(candidates)

    def start(self) -> None:
        self.refresh()
        self.task.start()
        logger.info("告警監控啟動（每 %s 秒）", self.task.interval)

    async def stop(self) -> None:
        await self.task.stop()
        logger.info("告警監控停止")
