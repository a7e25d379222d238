# services/api/adapters/sqlite/__init__.py
from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
    insert,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from datetime import datetime
from uuid import uuid4

from core.errors import AuditSinkError, QueryError

# ---- Engine (SQLite) with WAL & pragmas -------------------------------------

def _ensure_dir(path: str):
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)

def make_engine(db_url: str) -> Engine:
    # In-memory DBs must share one connection or every checkout sees an empty DB
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            db_url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # Create data dir if sqlite file
        if db_url.startswith("sqlite:///"):
            file_path = db_url.replace("sqlite:///", "", 1)
            _ensure_dir(file_path)
        engine = create_engine(db_url, future=True, pool_pre_ping=True)

    # Apply pragmas per-connection
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore
        if isinstance(dbapi_connection, sqlite3.Connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    return engine

# ---- Schema via SQLAlchemy Core ---------------------------------------------

metadata = MetaData()

profiles = Table(
    "profiles",
    metadata,
    Column("id", String, primary_key=True),
    Column("email", String),
    Column("role", String, nullable=False, default="client"),
    Column("company_name", String),
    Column("license_status", String, nullable=False, default="active"),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    CheckConstraint("role IN ('admin','internal','client','manufacturing')", name="ck_profiles_role"),
)

surveys = Table(
    "surveys",
    metadata,
    Column("id", String, primary_key=True),
    Column("client_name", String, nullable=False, default=""),
    Column("site_name", String, nullable=False, default=""),
    Column("site_address", Text),
    Column("survey_date", String),  # YYYY-MM-DD
    Column("surveyor_name", String, nullable=False, default=""),
    Column("project_reference", String),
    Column("general_notes", Text),
    Column("status", String, nullable=False, default="in_progress"),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    Column("updated_at", DateTime, nullable=False, default=datetime.utcnow),
)

assets = Table(
    "assets",
    metadata,
    # seq keeps insertion order stable; exports list pages in this order
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String, nullable=False, unique=True),
    Column("survey_id", String, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False),
    Column("asset_tag", String, nullable=False),
    Column("asset_type", String, nullable=False),
    Column("quantity", Integer, nullable=False, default=1),
    Column("location_area", String),
    Column("service", String),
    Column("complexity_level", Integer, nullable=False, default=1),
    Column("obstruction_present", Boolean, nullable=False, default=False),
    Column("obstruction_type", String),
    Column("obstruction_offset_mm", String),
    Column("obstruction_notes", Text),
    Column("cap_end_required", Boolean, nullable=False, default=False),
    Column("cap_end_notes", Text),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    Column("updated_at", DateTime, nullable=False, default=datetime.utcnow),
    CheckConstraint("complexity_level IN (1, 2)", name="ck_assets_level"),
)

security_logs = Table(
    "security_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String),
    Column("action", String, nullable=False),
    Column("metadata", Text),  # JSON
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
)

Index("idx_assets_survey", assets.c.survey_id, assets.c.seq)
Index("idx_security_logs_user", security_logs.c.user_id)

_ASSET_COLUMNS = [c for c in assets.c if c.name not in ("seq", "created_at", "updated_at")]
_SURVEY_COLUMNS = [c for c in surveys.c if c.name not in ("created_at", "updated_at")]

# ---- Adapter implementation --------------------------------------------------

@dataclass(frozen=True)
class SqliteAdapter:
    engine: Engine

    @classmethod
    def from_url(cls, db_url: str = "sqlite:///data/surveys.db") -> "SqliteAdapter":
        eng = make_engine(db_url)
        metadata.create_all(eng)
        return cls(engine=eng)

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(select(1))

    # Reads ---------------------------------------------------------------

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(profiles).where(profiles.c.id == user_id)
                ).mappings().first()
        except SQLAlchemyError as e:
            raise QueryError(f"profile lookup failed: {e}") from e
        return dict(row) if row else None

    def get_survey(self, survey_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(*_SURVEY_COLUMNS).where(surveys.c.id == survey_id)
                ).mappings().first()
        except SQLAlchemyError as e:
            raise QueryError(f"survey lookup failed: {e}") from e
        return dict(row) if row else None

    def list_assets(self, survey_id: str) -> List[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(*_ASSET_COLUMNS)
                    .where(assets.c.survey_id == survey_id)
                    .order_by(assets.c.seq.asc())
                ).mappings().all()
        except SQLAlchemyError as e:
            raise QueryError(f"asset query failed: {e}") from e
        return [dict(r) for r in rows]

    # Audit sink ----------------------------------------------------------

    def log_event(
        self,
        action: str,
        metadata: Dict[str, Any],
        *,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(security_logs).values(
                        user_id=user_id,
                        action=action,
                        metadata=json.dumps(metadata or {}, default=str),
                        created_at=datetime.utcnow(),
                    )
                )
        except SQLAlchemyError as e:
            raise AuditSinkError(f"security log write failed: {e}") from e
        return {"success": True}

    def list_security_events(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        q = select(security_logs).order_by(security_logs.c.id.asc())
        if user_id:
            q = q.where(security_logs.c.user_id == user_id)
        with self.engine.connect() as conn:
            rows = conn.execute(q).mappings().all()
        out = []
        for r in rows:
            d = dict(r)
            d["metadata"] = json.loads(d.get("metadata") or "{}")
            out.append(d)
        return out

    # Writes (seeding / admin tooling) -------------------------------------

    def upsert_profile(
        self,
        user_id: str,
        *,
        role: str = "client",
        company_name: Optional[str] = None,
        license_status: str = "active",
        email: Optional[str] = None,
    ) -> None:
        values = dict(
            role=role,
            company_name=company_name,
            license_status=license_status,
            email=email,
        )
        with self.engine.begin() as conn:
            exists = conn.execute(select(profiles.c.id).where(profiles.c.id == user_id)).first()
            if exists:
                conn.execute(profiles.update().where(profiles.c.id == user_id).values(**values))
            else:
                conn.execute(insert(profiles).values(id=user_id, created_at=datetime.utcnow(), **values))

    def create_survey(self, **fields: Any) -> str:
        survey_id = str(fields.pop("id", None) or uuid4())
        allowed = {c.name for c in _SURVEY_COLUMNS}
        now = datetime.utcnow()
        with self.engine.begin() as conn:
            conn.execute(
                insert(surveys).values(
                    id=survey_id,
                    created_at=now,
                    updated_at=now,
                    **{k: v for k, v in fields.items() if k in allowed},
                )
            )
        return survey_id

    def create_asset(self, survey_id: str, **fields: Any) -> str:
        asset_id = str(fields.pop("id", None) or uuid4())
        allowed = {c.name for c in _ASSET_COLUMNS}
        if fields.get("obstruction_offset_mm") is not None:
            fields["obstruction_offset_mm"] = str(fields["obstruction_offset_mm"])
        now = datetime.utcnow()
        with self.engine.begin() as conn:
            conn.execute(
                insert(assets).values(
                    id=asset_id,
                    survey_id=survey_id,
                    created_at=now,
                    updated_at=now,
                    **{k: v for k, v in fields.items() if k in allowed and k not in ("id", "survey_id")},
                )
            )
        return asset_id
