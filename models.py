from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship

from database import Base, utcnow


# 工單
class WorkOrder(Base):
    __tablename__ = "work_orders"
    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, nullable=False)
    product_name = Column(String, nullable=False)
    quantity_planned = Column(Integer, nullable=False)
    quantity_completed = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="pending")
    priority = Column(String, nullable=False, default="medium")
    start_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False, index=True)
    assigned_line = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# 設備清單，current_work_order 指向工單（讀取時帶出工單號與品名）
class Machine(Base):
    __tablename__ = "machines"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    status = Column(String, nullable=False, default="idle")
    current_work_order = Column(Integer, ForeignKey("work_orders.id", ondelete="SET NULL"), nullable=True)
    efficiency = Column(Float, nullable=False, default=0)
    last_maintenance = Column(DateTime, nullable=True)
    location = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)

    work_order = relationship("WorkOrder", lazy="joined")


# 作業員
class Operator(Base):
    __tablename__ = "operators"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    employee_id = Column(String, unique=True, nullable=False)
    shift = Column(String, nullable=False, default="day")
    skills = Column(JSON, nullable=False, default=list)
    current_assignment = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)


# 品檢紀錄；work_order_id 以字串保存工單 id
class QualityCheck(Base):
    __tablename__ = "quality_control"
    id = Column(Integer, primary_key=True, index=True)
    work_order_id = Column(String, nullable=False, index=True)
    check_type = Column(String, nullable=False)
    result = Column(String, nullable=False, default="pending")
    inspector_id = Column(Integer, ForeignKey("operators.id"), nullable=False)
    notes = Column(Text, nullable=True)
    checked_at = Column(DateTime, default=utcnow, index=True)
    created_at = Column(DateTime, default=utcnow)

    inspector = relationship("Operator", lazy="joined")
