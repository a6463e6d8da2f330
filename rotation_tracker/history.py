from __future__ import annotations

import json
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog


logger = structlog.get_logger(__name__)

STATUS_OK = "OK"
STATUS_PARSE_ERROR = "PARSE_ERROR"
STATUS_FETCH_ERROR = "FETCH_ERROR"


@dataclass(frozen=True)
class ObservationRecord:
    timestamp: str
    status: str
    node_short_id: str | None = None
    node_label: str | None = None
    node_host: str | None = None
    version: str | None = None
    response_time_ms: int | None = None
    failover: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "status": self.status,
            "nodeShortId": self.node_short_id,
            "nodeLabel": self.node_label,
            "nodeHost": self.node_host,
            "version": self.version,
            "responseTimeMs": self.response_time_ms,
            "failover": bool(self.failover),
            "error": self.error,
        }


@dataclass
class HistoryDocument:
    # Persisted mappings kept exactly as loaded; only ever appended to.
    records: list[dict[str, Any]] = field(default_factory=list)
    last_updated: str | None = None

    def last_record(self) -> dict[str, Any] | None:
        return self.records[-1] if self.records else None

    def append(self, record: ObservationRecord) -> None:
        self.records.append(record.to_dict())
        self.last_updated = record.timestamp

    def to_dict(self) -> dict[str, Any]:
        return {"records": self.records, "lastUpdated": self.last_updated}


def coerce_history(raw: Any) -> HistoryDocument | None:
    """
    Decode a loaded history payload. Returns None when the payload is not a
    history document at all (the caller treats that as corruption).
    """
    if not isinstance(raw, dict):
        return None
    records = raw.get("records")
    if not isinstance(records, list):
        return None
    if not all(isinstance(r, dict) for r in records):
        return None

    last_updated = raw.get("lastUpdated")
    if not isinstance(last_updated, str):
        last_updated = None
    return HistoryDocument(records=list(records), last_updated=last_updated)


def detect_failover(previous: dict[str, Any] | None, node_short_id: str | None) -> bool:
    if not previous or not node_short_id:
        return False
    prev_id = previous.get("nodeShortId")
    if not prev_id:
        return False
    return str(prev_id) != str(node_short_id)


def summarize_history(doc: HistoryDocument) -> dict[str, Any]:
    total = len(doc.records)
    ok_count = sum(1 for r in doc.records if r.get("status") == STATUS_OK)
    failovers = [r for r in doc.records if bool(r.get("failover"))]

    current_node = None
    for r in reversed(doc.records):
        if r.get("status") == STATUS_OK and r.get("nodeShortId"):
            current_node = str(r["nodeShortId"])
            break

    return {
        "total": total,
        "ok_count": ok_count,
        "ok_percent": round((ok_count / float(total)) * 100.0, 2) if total else None,
        "failover_count": len(failovers),
        "current_node": current_node,
        "last_failover_at": failovers[-1].get("timestamp") if failovers else None,
    }


class HistoryStore:
    """JSON-file backed, append-only observation log."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._unreadable = False

    def load(self) -> HistoryDocument:
        self._unreadable = False
        if not self.path.exists():
            return HistoryDocument()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError, RecursionError) as e:
            logger.warning("History file unreadable; starting fresh", path=str(self.path), error=str(e))
            self._unreadable = True
            return HistoryDocument()

        doc = coerce_history(raw)
        if doc is None:
            logger.warning("History file has unexpected layout; starting fresh", path=str(self.path))
            self._unreadable = True
            return HistoryDocument()
        return doc

    def save(self, doc: HistoryDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self._unreadable and self.path.exists():
            backup = self._backup_path()
            shutil.copy2(self.path, backup)
            logger.warning("Preserved unreadable history", backup=str(backup))
        self._unreadable = False

        tmp = self.path.with_name(f"{self.path.name}.tmp")
        try:
            tmp.write_text(json.dumps(doc.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self.path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def _backup_path(self) -> Path:
        # Never overwrite an earlier backup.
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        candidate = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        n = 1
        while candidate.exists():
            candidate = self.path.with_name(f"{self.path.name}.corrupt-{stamp}-{n}")
            n += 1
        return candidate
