"""Almacén clave-valor asíncrono: registros por tipo + id, serializados como dict."""
from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from kitchenpos.models.kv import KvRecord

PRODUCTS = "products"
MATERIA_PRIMA = "materia_prima"
PRODUCT_MATERIA_PRIMA = "product_materia_prima"
COMBOS = "combos"
SALES = "sales"
APP_SETTINGS = "app_settings"
CASH_DRAWER = "cash_drawer"
CASH_MOVEMENTS = "cash_movements"

Record = Dict[str, Any]


class KeyValueStore(Protocol):
    async def get(self, kind: str, record_id: str) -> Optional[Record]: ...

    async def list(self, kind: str) -> List[Record]: ...

    async def put(self, kind: str, record: Record) -> None: ...

    async def put_many(self, kind: str, records: Iterable[Record]) -> None: ...

    async def delete(self, kind: str, record_id: str) -> None: ...


class MemoryStore:
    def __init__(self):
        self._data: Dict[str, Dict[str, Record]] = {}

    async def get(self, kind, record_id):
        rec = self._data.get(kind, {}).get(record_id)
        return copy.deepcopy(rec) if rec is not None else None

    async def list(self, kind):
        return [copy.deepcopy(r) for r in self._data.get(kind, {}).values()]

    async def put(self, kind, record):
        self._data.setdefault(kind, {})[record["id"]] = copy.deepcopy(record)

    async def put_many(self, kind, records):
        bucket = self._data.setdefault(kind, {})
        for rec in records:
            bucket[rec["id"]] = copy.deepcopy(rec)

    async def delete(self, kind, record_id):
        self._data.get(kind, {}).pop(record_id, None)


class SqlStore:
    """Implementación sobre la tabla kv_record; el ORM corre en el threadpool."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _get(self, kind, record_id):
        db = self.session_factory()
        try:
            row = db.query(KvRecord).filter_by(kind=kind, record_id=record_id).first()
            return dict(row.payload) if row else None
        finally:
            db.close()

    def _list(self, kind):
        db = self.session_factory()
        try:
            rows = db.query(KvRecord).filter_by(kind=kind).order_by(KvRecord.id).all()
            return [dict(r.payload) for r in rows]
        finally:
            db.close()

    def _put_many(self, kind, records):
        db = self.session_factory()
        try:
            for rec in records:
                row = db.query(KvRecord).filter_by(kind=kind, record_id=rec["id"]).first()
                if row:
                    row.payload = rec
                else:
                    db.add(KvRecord(kind=kind, record_id=rec["id"], payload=rec))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _delete(self, kind, record_id):
        db = self.session_factory()
        try:
            db.query(KvRecord).filter_by(kind=kind, record_id=record_id).delete()
            db.commit()
        finally:
            db.close()

    async def get(self, kind, record_id):
        return await run_in_threadpool(self._get, kind, record_id)

    async def list(self, kind):
        return await run_in_threadpool(self._list, kind)

    async def put(self, kind, record):
        await run_in_threadpool(self._put_many, kind, [record])

    async def put_many(self, kind, records):
        await run_in_threadpool(self._put_many, kind, list(records))

    async def delete(self, kind, record_id):
        await run_in_threadpool(self._delete, kind, record_id)
