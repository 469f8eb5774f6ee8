import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import FastAPI, Depends, Request, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from alerts import AlertCandidate, AlertStore, filter_alerts, format_age
from config import settings
from crud_router import get_plant, make_collection_router
from database import Base, SessionLocal, engine, get_db, utcnow
from metrics import (
    AnalyticsKPIs,
    DashboardMetrics,
    analytics_kpis,
    dashboard_metrics,
    date_window,
    window_work_orders,
)
from monitor import AlertMonitor
from plant import Plant
from schemas import (
    MachineAssignment,
    MachineCreate,
    MachineOut,
    MachineStatusUpdate,
    MachineUpdate,
    OperatorCreate,
    OperatorOut,
    OperatorUpdate,
    ProductionUpdate,
    QualityCheckCreate,
    QualityCheckOut,
    QualityCheckUpdate,
    WorkOrderCreate,
    WorkOrderOut,
    WorkOrderUpdate,
)
from series import average_pass_rate, completion_rate, efficiency_ranking, quality_trend, status_breakdown
from store import StoreError, TableStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# 欄位/格式/唯一性問題算呼叫端的錯，其餘當作資料庫那端失敗
CLIENT_ERROR_CODES = {"22P02", "42703", "42P01", "relationship_not_found", "integrity_error"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    plant = Plant(TableStore(SessionLocal))
    alert_store = AlertStore()
    monitor = AlertMonitor(plant, alert_store, interval=settings.ALERT_REFRESH_SECONDS)
    app.state.plant = plant
    app.state.alert_store = alert_store
    app.state.monitor = monitor

    await plant.load()
    monitor.start()
    try:
        yield
    finally:
        await monitor.stop()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)


def get_alert_store(request: Request) -> AlertStore:
    return request.app.state.alert_store


def get_monitor(request: Request) -> AlertMonitor:
    return request.app.state.monitor


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.code == "not_found":
        code = status.HTTP_404_NOT_FOUND
    elif exc.code in CLIENT_ERROR_CODES or (exc.code or "").startswith("23"):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return JSONResponse(status_code=code, content=exc.as_dict())


# ---------- 健康檢查 ----------
@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"ok": True}


# ---------- 重新抓取全部資料 ----------
@app.post("/api/refresh")
async def refresh_all(plant: Plant = Depends(get_plant), monitor: AlertMonitor = Depends(get_monitor)):
    await plant.load()
    monitor.refresh()
    return {"loading": plant.loading, "errors": plant.errors}


# ---------- KPI ----------
@app.get("/api/dashboard", response_model=DashboardMetrics)
async def get_dashboard(plant: Plant = Depends(get_plant)):
    return dashboard_metrics(plant.snapshot(), utcnow())


@app.get("/api/analytics")
async def get_analytics(
    range: Literal["7d", "30d", "90d", "custom"] = Query(settings.ANALYTICS_DEFAULT_RANGE, description="範圍: 7d, 30d, 90d, custom"),
    start: Optional[dt.datetime] = None,
    end: Optional[dt.datetime] = None,
    plant: Plant = Depends(get_plant),
):
    window = date_window(range, utcnow(), start, end)
    snap = plant.snapshot()
    kpis: AnalyticsKPIs = analytics_kpis(snap, window)
    trend = quality_trend(snap.quality_checks, window)
    orders = window_work_orders(snap.work_orders, window)
    return {
        "kpis": kpis,
        "quality_trend": trend,
        "average_pass_rate": average_pass_rate(trend),
        "status_breakdown": status_breakdown(orders),
        "completion_rate": completion_rate(orders),
        "machine_efficiency": efficiency_ranking(snap.machines),
    }


# ---------- 告警 ----------
@app.get("/api/alerts")
async def api_alerts(
    search: str = "",
    type: Literal["all", "error", "warning", "info", "success"] = "all",
    sort: Literal["newest", "oldest", "type"] = "newest",
    alert_store: AlertStore = Depends(get_alert_store),
):
    now = utcnow()
    alerts = filter_alerts(alert_store.alerts, search=search, type=type, sort=sort)
    return {
        "alerts": [{**a.model_dump(), "age": format_age(a.timestamp, now)} for a in alerts],
        "stats": alert_store.stats(),
    }


@app.post("/api/alerts", status_code=status.HTTP_201_CREATED)
async def add_alert(payload: AlertCandidate, alert_store: AlertStore = Depends(get_alert_store)):
    return alert_store.add(payload.type, payload.message, payload.source)


@app.post("/api/alerts/refresh")
async def refresh_alerts(monitor: AlertMonitor = Depends(get_monitor)):
    replaced = monitor.refresh()
    return {"replaced": replaced, "alerts": monitor.alert_store.alerts}


@app.delete("/api/alerts/{alert_id}")
async def remove_alert(alert_id: str, alert_store: AlertStore = Depends(get_alert_store)):
    alert_store.remove(alert_id)
    return {"ok": True}


@app.delete("/api/alerts")
async def clear_alerts(alert_store: AlertStore = Depends(get_alert_store)):
    alert_store.clear_all()
    return {"ok": True}


# ---------- 工單 / 設備 / 作業員 / 品檢 CRUD ----------
work_orders_router = make_collection_router(
    "work_orders", "work-orders", "工單", WorkOrderCreate, WorkOrderUpdate, WorkOrderOut)
machines_router = make_collection_router(
    "machines", "machines", "設備", MachineCreate, MachineUpdate, MachineOut)
operators_router = make_collection_router(
    "operators", "operators", "作業員", OperatorCreate, OperatorUpdate, OperatorOut)
quality_router = make_collection_router(
    "quality_checks", "quality-checks", "品檢", QualityCheckCreate, QualityCheckUpdate, QualityCheckOut)


# 設備清單上直接改生產數量
@work_orders_router.patch("/{item_id}/production", response_model=WorkOrderOut)
async def update_production(item_id: str, payload: ProductionUpdate, plant: Plant = Depends(get_plant)):
    return await plant.work_orders.update_production(item_id, payload.quantity_completed)


@machines_router.patch("/{item_id}/status", response_model=MachineOut)
async def set_machine_status(item_id: str, payload: MachineStatusUpdate, plant: Plant = Depends(get_plant)):
    return await plant.machines.set_status(item_id, payload.status)


@machines_router.patch("/{item_id}/work-order", response_model=MachineOut)
async def assign_work_order(item_id: str, payload: MachineAssignment, plant: Plant = Depends(get_plant)):
    return await plant.machines.assign_work_order(item_id, payload.work_order_id)


for router in (work_orders_router, machines_router, operators_router, quality_router):
    app.include_router(router)
