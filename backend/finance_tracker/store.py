"""Embedded SQLite store backed by a single file.

The database lives in memory while the process runs. Every mutation is
followed by a full snapshot of the database written over the backing file,
so the file on disk always reflects the last successful operation.
"""
from __future__ import annotations

import logging
import os
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .config import DEFAULT_CURRENCY, DEFAULT_PROFILE_NAME
from .errors import StorageError, StoreUnavailable

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    create table if not exists settings (
      id integer primary key,
      name text not null default 'User',
      profileImage text,
      currency text default 'EUR',
      masterPasswordHash text,
      setupCompleted integer default 0,
      createdAt text,
      updatedAt text
    )
    """,
    """
    create table if not exists income (
      id integer primary key autoincrement,
      description text not null,
      amount real not null,
      date text not null,
      category text,
      provider text,
      icon text,
      createdAt text,
      updatedAt text
    )
    """,
    """
    create table if not exists outgoing (
      id integer primary key autoincrement,
      description text not null,
      amount real not null,
      date text not null,
      category text,
      provider text,
      recurring integer default 0,
      billingCycle text,
      nextPaymentDate text,
      icon text,
      createdAt text,
      updatedAt text
    )
    """,
    """
    create table if not exists payment_providers (
      id integer primary key autoincrement,
      name text not null,
      type text not null,
      accountNumber text,
      notes text,
      icon text,
      createdAt text,
      updatedAt text
    )
    """,
    """
    create table if not exists image_cache (
      id integer primary key autoincrement,
      imageKey text unique not null,
      data blob not null,
      mimeType text not null,
      createdAt text
    )
    """,
)


@dataclass(frozen=True)
class MutationResult:
    rowcount: int
    lastrowid: int | None


class Store:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.engine: Engine | None = None
        self._lock = threading.RLock()

    @staticmethod
    def now() -> str:
        moment = datetime.now(timezone.utc)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def __enter__(self) -> Store:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> Store:
        with self._lock:
            if self.engine is not None:
                return self
            engine = create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                snapshot = self.path.read_bytes() if self.path.exists() else b""
                if snapshot:
                    raw = engine.raw_connection()
                    try:
                        raw.driver_connection.deserialize(snapshot)
                    finally:
                        raw.close()
                self.engine = engine
                self._bootstrap()
                self.persist()
            except (OSError, sqlite3.Error, SQLAlchemyError, StorageError) as exc:
                self.engine = None
                engine.dispose()
                logger.error("Failed to open database at %s: %s", self.path, exc)
                raise StoreUnavailable(self.path, exc) from exc
            logger.info("Database opened at %s", self.path)
            return self

    def _bootstrap(self) -> None:
        for statement in SCHEMA:
            self.run(statement)
        now = self.now()
        self.run(
            """
            insert or ignore into settings (id, name, currency, setupCompleted, createdAt, updatedAt)
            values (1, :name, :currency, 0, :now, :now)
            """,
            {"name": DEFAULT_PROFILE_NAME, "currency": DEFAULT_CURRENCY, "now": now},
        )

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise StorageError(f"database is not open: {self.path}")
        return self.engine

    def run(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        engine = self._require_engine()
        try:
            with self._lock, engine.begin() as conn:
                result = conn.execute(text(sql), params or {})
                if result.returns_rows:
                    return [dict(row._mapping) for row in result.fetchall()]
                return []
        except SQLAlchemyError as exc:
            raise StorageError(f"database error: {exc.__class__.__name__}: {exc}") from exc

    def mutate(self, sql: str, params: dict[str, Any] | None = None) -> MutationResult:
        engine = self._require_engine()
        with self._lock:
            try:
                with engine.begin() as conn:
                    result = conn.execute(text(sql), params or {})
                    outcome = MutationResult(rowcount=result.rowcount, lastrowid=result.lastrowid)
            except SQLAlchemyError as exc:
                raise StorageError(f"database error: {exc.__class__.__name__}: {exc}") from exc
            self.persist()
        return outcome

    def persist(self) -> None:
        engine = self._require_engine()
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        with self._lock:
            try:
                raw = engine.raw_connection()
                try:
                    snapshot = raw.driver_connection.serialize()
                finally:
                    raw.close()
                tmp_path.write_bytes(snapshot)
                os.replace(tmp_path, self.path)
            except (OSError, sqlite3.Error) as exc:
                logger.error("Failed to persist database to %s: %s", self.path, exc)
                raise StorageError(f"failed to write database file {self.path}: {exc}") from exc
        logger.debug("Persisted %d bytes to %s", len(snapshot), self.path)

    def close(self) -> None:
        with self._lock:
            if self.engine is None:
                return
            try:
                self.persist()
            finally:
                self.engine.dispose()
                self.engine = None
                logger.info("Database closed: %s", self.path)

    def table_counts(self) -> dict[str, int]:
        counts = {}
        for table in ("settings", "income", "outgoing", "payment_providers", "image_cache"):
            counts[table] = self.run(f"select count(*) as n from {table}")[0]["n"]
        return counts
