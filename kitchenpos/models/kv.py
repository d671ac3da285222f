from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint

from ..db import Base


class KvRecord(Base):
    __tablename__ = "kv_record"
    id = Column(Integer, primary_key=True)
    kind = Column(String(40), nullable=False, index=True)  # products | sales | materia_prima | ...
    record_id = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    __table_args__ = (UniqueConstraint("kind", "record_id", name="uq_kv_kind_record"),)
