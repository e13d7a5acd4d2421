from __future__ import annotations

import base64
import logging
import time
from pathlib import PurePath
from typing import Any

from .auth_utils import hash_password, verify_password
from .config import DEFAULT_CURRENCY, DEFAULT_PROFILE_NAME
from .errors import NoCredentialConfigured, RecordValidationError
from .schemas import (
    CREATE_SCHEMAS,
    UPDATE_SCHEMAS,
    EntityKind,
    Profile,
    SettingsUpdate,
    SetupRequest,
    parse_kind,
    validate_model,
)
from .store import Store

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "svg"}
SQLITE_MAX_ID = 2**63 - 1


def _record_id(value: Any) -> int | None:
    """Coerce a caller id to an int, or None when no row can carry it."""
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise RecordValidationError(f"invalid id: {value!r}")
    try:
        record_id = int(value)
    except (TypeError, ValueError, OverflowError):
        raise RecordValidationError(f"invalid id: {value!r}") from None
    if not 1 <= record_id <= SQLITE_MAX_ID:
        return None
    return record_id


def _decode_record(kind: EntityKind, row: dict[str, Any]) -> dict[str, Any]:
    if kind is EntityKind.outgoing:
        row["recurring"] = bool(row.get("recurring"))
    return row


class RecordGateway:
    """Generic CRUD over the whitelisted entity tables.

    The table name is always taken from ``EntityKind`` so user input never
    reaches the SQL text; field values go through the kind's pydantic schema
    before the store is touched.
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    def list_all(self, kind: Any) -> list[dict[str, Any]]:
        entity = parse_kind(kind)
        rows = self.store.run(f"select * from {entity.value} order by createdAt desc, id desc")
        return [_decode_record(entity, row) for row in rows]

    def get_by_id(self, kind: Any, record_id: Any) -> dict[str, Any] | None:
        entity = parse_kind(kind)
        row_id = _record_id(record_id)
        if row_id is None:
            return None
        rows = self.store.run(f"select * from {entity.value} where id = :id", {"id": row_id})
        return _decode_record(entity, rows[0]) if rows else None

    def insert(self, kind: Any, fields: dict[str, Any]) -> int:
        entity = parse_kind(kind)
        record = validate_model(CREATE_SCHEMAS[entity], fields)
        values = record.model_dump(mode="json")
        now = self.store.now()
        values["createdAt"] = now
        values["updatedAt"] = now
        columns = list(values)
        result = self.store.mutate(
            f"insert into {entity.value} ({', '.join(columns)}) values ({', '.join(':' + c for c in columns)})",
            values,
        )
        logger.debug("Inserted %s #%s", entity.value, result.lastrowid)
        return int(result.lastrowid)

    def update(self, kind: Any, record_id: Any, fields: dict[str, Any]) -> int:
        entity = parse_kind(kind)
        changes = validate_model(UPDATE_SCHEMAS[entity], fields).model_dump(exclude_unset=True)
        existing = self.get_by_id(entity, record_id)
        if existing is None:
            return 0
        schema = CREATE_SCHEMAS[entity]
        merged = {name: existing.get(name) for name in schema.model_fields}
        merged.update(changes)
        values = validate_model(schema, merged).model_dump(mode="json")
        values["updatedAt"] = self.store.now()
        values["id"] = existing["id"]
        assignments = ", ".join(f"{c} = :{c}" for c in values if c != "id")
        result = self.store.mutate(f"update {entity.value} set {assignments} where id = :id", values)
        logger.debug("Updated %s #%s", entity.value, existing["id"])
        return result.rowcount

    def delete(self, kind: Any, record_id: Any) -> int:
        entity = parse_kind(kind)
        row_id = _record_id(record_id)
        if row_id is None:
            return 0
        result = self.store.mutate(f"delete from {entity.value} where id = :id", {"id": row_id})
        logger.debug("Deleted %s #%s (%d rows)", entity.value, record_id, result.rowcount)
        return result.rowcount


class SettingsRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def get_settings(self) -> dict[str, Any] | None:
        rows = self.store.run("select * from settings where id = 1")
        if not rows:
            return None
        row = rows[0]
        row["setupCompleted"] = bool(row.get("setupCompleted"))
        return row

    def is_first_run(self) -> bool:
        row = self.get_settings()
        return row is None or not row["setupCompleted"]

    def get_profile(self) -> Profile:
        row = self.get_settings() or {}
        return Profile(
            name=row.get("name") or DEFAULT_PROFILE_NAME,
            profileImage=row.get("profileImage") or None,
            currency=row.get("currency") or DEFAULT_CURRENCY,
        )

    def complete_setup(self, name: str, currency: str, password: str, profile_image: str | None = None) -> None:
        payload = validate_model(
            SetupRequest,
            {"name": name, "currency": currency, "password": password, "profileImage": profile_image},
        )
        self.store.mutate(
            """
            update settings
            set name = :name, currency = :currency, masterPasswordHash = :password_hash,
                profileImage = :profile_image, setupCompleted = 1, updatedAt = :now
            where id = 1
            """,
            {
                "name": payload.name,
                "currency": payload.currency,
                "password_hash": hash_password(payload.password),
                "profile_image": payload.profileImage,
                "now": self.store.now(),
            },
        )
        logger.info("Initial setup completed for %s", payload.name)

    def update_settings(self, partial: dict[str, Any]) -> dict[str, Any] | None:
        changes = validate_model(SettingsUpdate, partial).model_dump(exclude_unset=True)
        for field in ("name", "currency"):
            if field in changes and changes[field] is None:
                raise RecordValidationError(f"{field}: must not be null")
        current = self.get_settings() or {}
        merged = {
            "name": current.get("name"),
            "currency": current.get("currency"),
            "profileImage": current.get("profileImage"),
        }
        merged.update(changes)
        self.store.mutate(
            """
            update settings
            set name = :name, currency = :currency, profileImage = :profileImage, updatedAt = :now
            where id = 1
            """,
            {**merged, "now": self.store.now()},
        )
        return self.get_settings()

    def verify_password(self, password: str) -> bool:
        row = self.get_settings()
        if not row or not row.get("masterPasswordHash"):
            raise NoCredentialConfigured()
        return verify_password(password, row["masterPasswordHash"])


def make_image_key(category: str, now_ms: int | None = None) -> str:
    if not category or not category.strip():
        raise RecordValidationError("image category must not be empty")
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{category.strip()}_{stamp}"


def guess_mime_type(filename: str) -> str:
    ext = PurePath(filename).suffix.lstrip(".").lower()
    if ext not in IMAGE_EXTENSIONS:
        raise RecordValidationError(f"unsupported image type: {filename}")
    return "image/svg+xml" if ext == "svg" else f"image/{ext}"


class ImageCache:
    def __init__(self, store: Store) -> None:
        self.store = store

    def save(self, image_key: str, data: bytes, mime_type: str) -> int:
        if not image_key:
            raise RecordValidationError("No image key provided")
        if not mime_type:
            raise RecordValidationError("mime type must not be empty")
        existing = self.store.run("select id from image_cache where imageKey = :key", {"key": image_key})
        if existing:
            self.store.mutate(
                "update image_cache set data = :data, mimeType = :mime where imageKey = :key",
                {"data": bytes(data), "mime": mime_type, "key": image_key},
            )
            return existing[0]["id"]
        result = self.store.mutate(
            """
            insert into image_cache (imageKey, data, mimeType, createdAt)
            values (:key, :data, :mime, :now)
            """,
            {"key": image_key, "data": bytes(data), "mime": mime_type, "now": self.store.now()},
        )
        logger.debug("Stored image %s (%d bytes)", image_key, len(data))
        return int(result.lastrowid)

    def get(self, image_key: str) -> dict[str, Any] | None:
        rows = self.store.run(
            "select id, imageKey, data, mimeType, createdAt from image_cache where imageKey = :key",
            {"key": image_key},
        )
        return rows[0] if rows else None

    def get_data_uri(self, image_key: str) -> str | None:
        image = self.get(image_key)
        if image is None:
            return None
        encoded = base64.b64encode(image["data"]).decode("ascii")
        return f"data:{image['mimeType']};base64,{encoded}"

    def delete(self, image_key: str) -> int:
        result = self.store.mutate("delete from image_cache where imageKey = :key", {"key": image_key})
        return result.rowcount
