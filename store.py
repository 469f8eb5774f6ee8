"""
資料表存取層：每張表提供 list / insert / update / delete 四種操作。

回傳的每一列都是 dict（id 為數字），可用 embed 帶出關聯表的欄位，
例如 machines 帶出 work_orders、quality_control 帶出 operators。
任何失敗都包成 StoreError(message, details, hint, code) 往上丟，不重試。
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import asc, desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import Machine, Operator, QualityCheck, WorkOrder

TABLES = {
    "work_orders": WorkOrder,
    "machines": Machine,
    "operators": Operator,
    "quality_control": QualityCheck,
}

# 表 -> {內嵌名稱: (relationship 屬性, 帶出的欄位)}
EMBEDS = {
    "machines": {
        "work_orders": ("work_order", ("id", "order_number", "product_name")),
    },
    "quality_control": {
        "operators": (
            "inspector",
            ("id", "name", "employee_id", "shift", "skills", "current_assignment"),
        ),
    },
}


class StoreError(Exception):
    def __init__(self, message: str, details: Optional[str] = None,
                 hint: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint
        self.code = code

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "message": self.message,
            "details": self.details,
            "hint": self.hint,
            "code": self.code,
        }


def parse_id(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise StoreError(f'invalid input syntax for type integer: "{value}"', code="22P02") from None


class TableStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    # ========== 內部小工具 ==========
    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
        except IntegrityError as e:
            db.rollback()
            raise StoreError(
                str(e.orig),
                details=str(e.params) if e.params else None,
                hint="檢查唯一欄位或關聯是否重複/不存在",
                code=getattr(e.orig, "sqlstate", None) or "integrity_error",
            ) from e
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(str(e), code="db_error") from e
        finally:
            db.close()

    def _model(self, table: str):
        model = TABLES.get(table)
        if model is None:
            raise StoreError(f'relation "{table}" does not exist', code="42P01")
        return model

    def _column(self, table: str, name: str):
        model = self._model(table)
        if name not in model.__table__.columns:
            raise StoreError(
                f"Could not find the '{name}' column of '{table}'",
                hint=f"可用欄位: {', '.join(model.__table__.columns.keys())}",
                code="42703",
            )
        return getattr(model, name)

    def _check_embed(self, table: str, embed: Iterable[str]):
        known = EMBEDS.get(table, {})
        for name in embed:
            if name not in known:
                raise StoreError(
                    f"Could not find a relationship between '{table}' and '{name}'",
                    code="relationship_not_found",
                )

    def _to_dict(self, table: str, obj, embed: Iterable[str]) -> Dict[str, Any]:
        row = {c.name: getattr(obj, c.name) for c in obj.__table__.columns}
        for name in embed:
            attr, fields = EMBEDS[table][name]
            related = getattr(obj, attr)
            row[name] = {f: getattr(related, f) for f in fields} if related is not None else None
        return row

    def _clean(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """檢查欄位存在；值為 None 且欄位有預設值時交給預設值處理"""
        columns = self._model(table).__table__.columns
        for name in row:
            self._column(table, name)
        return {k: v for k, v in row.items() if v is not None or columns[k].default is None}

    # ========== 對外操作 ==========
    def list(self, table: str, filters: Optional[Dict[str, Any]] = None,
             order_by: Optional[str] = None, ascending: bool = False,
             embed: Iterable[str] = ()) -> List[Dict[str, Any]]:
        model = self._model(table)
        self._check_embed(table, embed)
        conditions = [self._column(table, k) == v for k, v in (filters or {}).items()]
        sort = asc if ascending else desc
        order = [sort(self._column(table, order_by))] if order_by else []
        with self._session() as db:
            q = db.query(model).filter(*conditions).order_by(*order, sort(model.id))
            return [self._to_dict(table, obj, embed) for obj in q.all()]

    def insert(self, table: str, row: Dict[str, Any], embed: Iterable[str] = ()) -> Dict[str, Any]:
        model = self._model(table)
        self._check_embed(table, embed)
        values = self._clean(table, row)
        with self._session() as db:
            obj = model(**values)
            db.add(obj)
            db.commit()
            db.refresh(obj)
            return self._to_dict(table, obj, embed)

    def update(self, table: str, id: Any, partial: Dict[str, Any],
               embed: Iterable[str] = ()) -> Dict[str, Any]:
        model = self._model(table)
        self._check_embed(table, embed)
        pk = parse_id(id)
        for name in partial:
            self._column(table, name)
        with self._session() as db:
            obj = db.get(model, pk)
            if obj is None:
                raise StoreError(
                    f"{table} {pk} 不存在",
                    details="The result contains 0 rows",
                    code="not_found",
                )
            for k, v in partial.items():
                setattr(obj, k, v)
            db.commit()
            db.refresh(obj)
            return self._to_dict(table, obj, embed)

    def delete(self, table: str, id: Any) -> None:
        model = self._model(table)
        pk = parse_id(id)
        with self._session() as db:
            obj = db.get(model, pk)
            if obj is not None:
                db.delete(obj)
                db.commit()
