# erp_backend/sync/queue_store.py
"""Client-local persistence for queued write operations.

Kept apart from the server schema: its own declarative base and its own
engine, normally a SQLite file next to the client.
"""
from __future__ import annotations

import enum
import time
import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import JSON, Column, Float, Integer, String, Text, create_engine, func
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

QueueBase = declarative_base()


class OperationStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"


class QueuedOperationRecord(QueueBase):
    __tablename__ = "offline_operations"

    # seq gives strict enqueue order, even for equal timestamps
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), unique=True, nullable=False, index=True)

    url = Column(String, nullable=False)
    method = Column(String(10), nullable=False)
    headers = Column(JSON, nullable=False, default=dict)
    body = Column(Text, nullable=True)

    timestamp = Column(Float, nullable=False)  # epoch ms
    retries = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=OperationStatus.PENDING.value, nullable=False, index=True)


class QueuedOperation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    method: str
    headers: Dict[str, str] = {}
    body: Optional[str] = None
    timestamp: float
    retries: int = 0
    status: OperationStatus = OperationStatus.PENDING


def generate_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class OfflineQueueStore:
    def __init__(self, url: str = "sqlite:///./offline_queue.db"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty db
            self.engine = create_engine(
                url, connect_args={"check_same_thread": False}, poolclass=StaticPool
            )
        else:
            self.engine = create_engine(url, connect_args={"check_same_thread": False})
        QueueBase.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def add(self, method: str, url: str, headers: Dict[str, str], body: Optional[str]) -> QueuedOperation:
        record = QueuedOperationRecord(
            id=generate_id(),
            url=url,
            method=method.upper(),
            headers=dict(headers or {}),
            body=body,
            timestamp=time.time() * 1000,
            retries=0,
            status=OperationStatus.PENDING.value,
        )
        with self.Session() as session:
            session.add(record)
            session.commit()
            return QueuedOperation.model_validate(record)

    def get(self, op_id: str) -> Optional[QueuedOperation]:
        with self.Session() as session:
            record = session.query(QueuedOperationRecord).filter_by(id=op_id).first()
            return QueuedOperation.model_validate(record) if record else None

    def list(self, status: Optional[OperationStatus] = None) -> List[QueuedOperation]:
        with self.Session() as session:
            query = session.query(QueuedOperationRecord)
            if status is not None:
                query = query.filter(QueuedOperationRecord.status == status.value)
            return [QueuedOperation.model_validate(r) for r in query.order_by(QueuedOperationRecord.seq).all()]

    def update(self, op_id: str, status: OperationStatus, retries: Optional[int] = None) -> Optional[QueuedOperation]:
        with self.Session() as session:
            record = session.query(QueuedOperationRecord).filter_by(id=op_id).first()
            if record is None:
                return None
            record.status = status.value
            if retries is not None:
                record.retries = retries
            session.commit()
            return QueuedOperation.model_validate(record)

    def delete(self, op_id: str) -> bool:
        with self.Session() as session:
            deleted = session.query(QueuedOperationRecord).filter_by(id=op_id).delete()
            session.commit()
            return bool(deleted)

    def clear(self) -> None:
        with self.Session() as session:
            session.query(QueuedOperationRecord).delete()
            session.commit()

    def count_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in OperationStatus}
        with self.Session() as session:
            rows = (
                session.query(QueuedOperationRecord.status, func.count(QueuedOperationRecord.seq))
                .group_by(QueuedOperationRecord.status)
                .all()
            )
        for status, count in rows:
            counts[status] = count
        return counts
