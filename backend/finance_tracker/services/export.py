"""CSV export of tracker records."""
from __future__ import annotations

import csv
import io
import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterable

from ..errors import StorageError
from ..schemas import EntityKind, parse_kind

logger = logging.getLogger(__name__)

EXPORT_PREFIXES = {
    EntityKind.income: "income",
    EntityKind.outgoing: "expenses",
    EntityKind.payment_providers: "payment_providers",
}


def _row_for(kind: EntityKind, record: dict[str, Any]) -> list[Any]:
    if kind is EntityKind.payment_providers:
        return [
            record.get("name") or "",
            record.get("type") or "",
            record.get("accountNumber") or "",
            record.get("notes") or "",
        ]
    row = [
        record.get("date") or "",
        record.get("description") or "",
        record.get("category") or "",
        record.get("provider") or "",
    ]
    if kind is EntityKind.outgoing:
        row.append("Yes" if record.get("recurring") else "No")
    row.append(record.get("amount") or 0)
    return row


def _header_for(kind: EntityKind) -> list[str]:
    if kind is EntityKind.payment_providers:
        return ["Name", "Type", "Account Number", "Notes"]
    if kind is EntityKind.outgoing:
        return ["Date", "Description", "Category", "Provider", "Recurring", "Amount"]
    return ["Date", "Description", "Category", "Provider", "Amount"]


def records_to_csv(kind: Any, records: Iterable[dict[str, Any]]) -> str:
    entity = parse_kind(kind)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(_header_for(entity))
    for record in records:
        writer.writerow(_row_for(entity, record))
    return buffer.getvalue()


def default_export_filename(kind: Any, today: date | None = None) -> str:
    entity = parse_kind(kind)
    day = (today or date.today()).isoformat()
    return f"{EXPORT_PREFIXES[entity]}_export_{day}.csv"


def write_csv(content: str, path: str | Path) -> Path:
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        logger.error("CSV export to %s failed: %s", target, exc)
        raise StorageError(f"failed to write {target}: {exc}") from exc
    logger.info("Exported CSV to %s", target)
    return target.resolve()
