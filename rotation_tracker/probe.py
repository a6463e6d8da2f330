from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol

import structlog

from rotation_tracker.config import ProbeConfig
from rotation_tracker.fetcher import FetchError
from rotation_tracker.footer_parser import parse_footer
from rotation_tracker.history import (
    STATUS_FETCH_ERROR,
    STATUS_OK,
    STATUS_PARSE_ERROR,
    HistoryDocument,
    ObservationRecord,
    detect_failover,
    summarize_history,
)
from rotation_tracker.nodes import resolve_node


logger = structlog.get_logger(__name__)

PARSE_ERROR_MESSAGE = "Footer pattern not found in page"

FetchFn = Callable[[str], Awaitable[str]]
ClockFn = Callable[[], datetime]


class HistoryBackend(Protocol):
    def load(self) -> HistoryDocument: ...

    def save(self, doc: HistoryDocument) -> None: ...


@dataclass(frozen=True)
class ProbeOutcome:
    record: ObservationRecord
    record_count: int
    previous_node_short_id: str | None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def observe(url: str, *, fetch: FetchFn, timestamp: str) -> ObservationRecord:
    """Fetch and parse once; every failure becomes a classified record."""
    try:
        html = await fetch(url)
    except FetchError as e:
        logger.error("FETCH ERROR", error=str(e))
        return ObservationRecord(timestamp=timestamp, status=STATUS_FETCH_ERROR, error=str(e))

    info = parse_footer(html)
    if info is None:
        logger.error("PARSE ERROR: could not find version/node pattern in page")
        return ObservationRecord(timestamp=timestamp, status=STATUS_PARSE_ERROR, error=PARSE_ERROR_MESSAGE)

    node = resolve_node(info.node_short_id)
    logger.info(
        "OK",
        node=node.label,
        host=node.host,
        version=info.version,
        response_time_ms=info.response_time_ms,
    )
    return ObservationRecord(
        timestamp=timestamp,
        status=STATUS_OK,
        node_short_id=node.short_id,
        node_label=node.label,
        node_host=node.host,
        version=info.version,
        response_time_ms=info.response_time_ms,
    )


async def run_probe(
    config: ProbeConfig,
    *,
    fetch: FetchFn,
    store: HistoryBackend,
    clock: ClockFn = _utc_now,
) -> ProbeOutcome:
    timestamp = format_timestamp(clock())
    logger.info("Polling", url=config.url, timestamp=timestamp)

    observed = await observe(config.url, fetch=fetch, timestamp=timestamp)

    doc = store.load()
    previous = doc.last_record()
    failover = detect_failover(previous, observed.node_short_id)
    record = replace(observed, failover=failover)
    if failover and previous is not None:
        logger.warning(
            f"*** FAILOVER DETECTED: {previous.get('nodeLabel')} → {record.node_label} ***",
            previous_node=previous.get("nodeShortId"),
            node=record.node_short_id,
        )

    doc.append(record)
    store.save(doc)

    summary = summarize_history(doc)
    logger.info(
        "Saved",
        path=str(getattr(store, "path", "")),
        records=len(doc.records),
        failovers=summary["failover_count"],
        ok_percent=summary["ok_percent"],
    )

    prev_id = previous.get("nodeShortId") if previous else None
    return ProbeOutcome(
        record=record,
        record_count=len(doc.records),
        previous_node_short_id=str(prev_id) if prev_id else None,
    )
