from __future__ import annotations

import json
from pathlib import Path
from threading import Lock
from typing import Optional

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from connect_career.app.models import utc_now

SNAPSHOT_ID = "default"


def _normalize_database_url(database_url: str) -> str:
    value = database_url.strip()
    if value.startswith("sqlite:///"):
        sqlite_path = value[len("sqlite:///") :].split("?", 1)[0]
        if sqlite_path and sqlite_path != ":memory:":
            path = Path(sqlite_path)
            if path.parent:
                path.parent.mkdir(parents=True, exist_ok=True)
        return value
    if "://" in value:
        return value
    path = Path(value)
    if path.parent:
        path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{str(path).replace(chr(92), '/')}"


class SnapshotPersistence:
    """
    Stores the whole pipeline state as one JSON document. Works with SQLite and PostgreSQL URLs.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = _normalize_database_url(database_url)
        self._lock = Lock()
        self.engine: Engine = create_engine(
            self.database_url,
            future=True,
            pool_pre_ping=True,
        )
        self.metadata = MetaData()
        self.state_snapshots = Table(
            "state_snapshots",
            self.metadata,
            Column("id", String(50), primary_key=True),
            Column("payload_json", Text, nullable=False),
            Column("updated_at_utc", DateTime, nullable=False),
        )
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.metadata.create_all(self.engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

    def save_snapshot(self, payload: dict) -> None:
        with self._lock:
            serialized = json.dumps(payload)
            now = utc_now().replace(tzinfo=None)
            with self.engine.begin() as conn:
                existing = conn.execute(
                    select(self.state_snapshots.c.id).where(self.state_snapshots.c.id == SNAPSHOT_ID)
                ).first()
                if existing:
                    conn.execute(
                        self.state_snapshots.update()
                        .where(self.state_snapshots.c.id == SNAPSHOT_ID)
                        .values(payload_json=serialized, updated_at_utc=now)
                    )
                else:
                    conn.execute(
                        self.state_snapshots.insert().values(
                            id=SNAPSHOT_ID,
                            payload_json=serialized,
                            updated_at_utc=now,
                        )
                    )

    def load_snapshot(self) -> Optional[dict]:
        with self._lock:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(self.state_snapshots.c.payload_json).where(
                        self.state_snapshots.c.id == SNAPSHOT_ID
                    )
                ).first()
            if not row:
                return None
            return json.loads(row[0])
