from __future__ import annotations

import json
from pathlib import Path

import pytest

from rotation_tracker.history import (
    STATUS_FETCH_ERROR,
    STATUS_OK,
    HistoryDocument,
    HistoryStore,
    ObservationRecord,
    coerce_history,
    detect_failover,
    summarize_history,
)


def _ok(ts: str, node: str) -> ObservationRecord:
    return ObservationRecord(
        timestamp=ts,
        status=STATUS_OK,
        node_short_id=node,
        node_label=node.upper(),
        node_host=f"idt183{node[1:]}",
        version="9.14.7",
        response_time_ms=3,
    )


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    store = HistoryStore(tmp_path / "nope" / "history.json")
    doc = store.load()
    assert doc.records == []
    assert doc.last_updated is None


def test_corrupt_file_loads_empty_and_is_preserved_on_save(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")
    store = HistoryStore(path)

    doc = store.load()
    assert doc.to_dict() == {"records": [], "lastUpdated": None}

    doc.append(_ok("2026-01-01T00:00:00.000Z", "i068"))
    store.save(doc)

    backups = list(tmp_path.glob("history.json.corrupt-*"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "{not json"
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert len(saved["records"]) == 1


def test_repeated_corruption_keeps_every_backup(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    store = HistoryStore(path)

    for garbage in ("first-bad", "second-bad"):
        path.write_text(garbage, encoding="utf-8")
        doc = store.load()
        doc.append(_ok("2026-01-01T00:00:00.000Z", "i068"))
        store.save(doc)

    contents = sorted(p.read_text(encoding="utf-8") for p in tmp_path.glob("history.json.corrupt-*"))
    assert contents == ["first-bad", "second-bad"]


def test_deeply_nested_json_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text("[" * 200000, encoding="utf-8")

    doc = HistoryStore(path).load()
    assert doc.records == []
    assert doc.last_updated is None


def test_failed_write_removes_temp_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "history.json"
    store = HistoryStore(path)
    doc = store.load()
    doc.append(_ok("2026-01-01T00:00:00.000Z", "i068"))

    def _fail_replace(self: Path, target: Path) -> Path:
        raise OSError("read-only filesystem")

    monkeypatch.setattr(Path, "replace", _fail_replace)
    with pytest.raises(OSError):
        store.save(doc)

    assert not (tmp_path / "history.json.tmp").exists()
    assert not path.exists()


def test_wrong_layout_is_treated_as_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    assert HistoryStore(path).load().records == []

    assert coerce_history({"records": "x"}) is None
    assert coerce_history({"records": [1]}) is None
    doc = coerce_history({"records": [], "lastUpdated": 5})
    assert doc is not None and doc.last_updated is None


def test_save_creates_directory_and_pretty_prints(tmp_path: Path) -> None:
    path = tmp_path / "data" / "rotation-history.json"
    store = HistoryStore(path)
    doc = store.load()
    doc.append(_ok("2026-01-01T00:00:00.000Z", "i067"))
    store.save(doc)

    raw = path.read_text(encoding="utf-8")
    assert raw.startswith("{\n  ")
    assert not (tmp_path / "data" / "rotation-history.json.tmp").exists()
    payload = json.loads(raw)
    assert payload["lastUpdated"] == "2026-01-01T00:00:00.000Z"
    assert payload["records"][0]["nodeHost"] == "idt183067"


def test_append_then_reload_keeps_order_and_earlier_entries(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    store = HistoryStore(path)

    # Unknown keys in earlier records survive a load/save cycle untouched.
    legacy = {"timestamp": "2025-12-31T00:00:00.000Z", "status": "OK", "nodeShortId": "i069", "extra": 1}
    path.write_text(json.dumps({"records": [legacy], "lastUpdated": None}), encoding="utf-8")

    nodes = ["i068", "i068", "i067", "i069"]
    for i, node in enumerate(nodes):
        doc = store.load()
        doc.append(_ok(f"2026-01-0{i + 1}T00:00:00.000Z", node))
        store.save(doc)

    doc = store.load()
    assert len(doc.records) == len(nodes) + 1
    assert doc.records[0] == legacy
    assert [r["nodeShortId"] for r in doc.records[1:]] == nodes
    assert doc.last_updated == "2026-01-04T00:00:00.000Z"


def test_detect_failover_adjacent_pairs() -> None:
    prev = {"nodeShortId": "i068"}
    assert detect_failover(prev, "i069") is True
    assert detect_failover(prev, "i068") is False
    assert detect_failover({"nodeShortId": None}, "i069") is False
    assert detect_failover(prev, None) is False
    assert detect_failover(None, "i068") is False


def test_summarize_history() -> None:
    doc = HistoryDocument()
    assert summarize_history(doc)["ok_percent"] is None

    doc.append(_ok("2026-01-01T00:00:00.000Z", "i068"))
    doc.append(ObservationRecord(timestamp="2026-01-02T00:00:00.000Z", status=STATUS_FETCH_ERROR, error="Timeout"))
    failover = ObservationRecord(
        timestamp="2026-01-03T00:00:00.000Z",
        status=STATUS_OK,
        node_short_id="i069",
        node_label="IDT069",
        node_host="idt183069",
        failover=True,
    )
    doc.append(failover)
    doc.append(ObservationRecord(timestamp="2026-01-04T00:00:00.000Z", status=STATUS_FETCH_ERROR, error="HTTP 502"))

    summary = summarize_history(doc)
    assert summary["total"] == 4
    assert summary["ok_count"] == 2
    assert summary["ok_percent"] == 50.0
    assert summary["failover_count"] == 1
    assert summary["current_node"] == "i069"
    assert summary["last_failover_at"] == "2026-01-03T00:00:00.000Z"
