"""
Result history persistence and summaries.

Results are stored as JSON-lines in ``~/.speedlog/history.jsonl``.
Each line is a self-contained record tagged with the identity of the user
who ran the test, so the file can be appended to safely (no need to parse
the whole file to add a record).

The measurement engine never imports this module; it is the "save result"
collaborator the CLI calls once a run has produced a result.
"""
from __future__ import annotations

import json
import os
import statistics
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .orchestrator import MeasurementResult


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

_DEFAULT_DIR = os.path.join(Path.home(), ".speedlog")
_DEFAULT_FILE = "history.jsonl"
_MAX_DISPLAY = 10  # show last N entries in --history


def _history_path() -> str:
    return os.path.join(_DEFAULT_DIR, _DEFAULT_FILE)


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------

def save_result(result: MeasurementResult, user_identity: str) -> str:
    """
    Append *result* for *user_identity*.  Returns the new record id.

    Raises ``ValueError`` when the identity is blank.
    """
    user_identity = (user_identity or "").strip()
    if not user_identity:
        raise ValueError("user identity is required to save a result")

    record: Dict[str, Any] = {
        "id": uuid.uuid4().hex,
        "userIdentity": user_identity,
        "downloadBps": round(result.download_bps, 2),
        "uploadBps": round(result.upload_bps, 2),
        "latencyMs": result.latency_ms,
        "jitterMs": result.jitter_ms,
        "serverLabel": result.server_label,
        "timestamp": result.timestamp.isoformat(),
    }

    path = _history_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")

    return record["id"]


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

def load_history(
    limit: int = _MAX_DISPLAY,
    user_identity: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Return the most recent *limit* records (all if *limit* <= 0), newest last."""
    path = _history_path()
    if not os.path.isfile(path):
        return []

    entries: List[Dict[str, Any]] = []
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue  # skip corrupt lines
            if not isinstance(entry, dict):
                continue
            if user_identity and entry.get("userIdentity") != user_identity:
                continue
            entries.append(entry)

    return entries[-limit:] if limit > 0 else entries


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def _parse_ts(raw: Any) -> Optional[datetime]:
    try:
        ts = datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def summarize(
    entries: List[Dict[str, Any]],
    days: int = 30,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Aggregate the records of the last *days* days.

    Speeds are reported in Mbps, latency in ms; averages are ``None`` when
    the window holds no records.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days)

    window = []
    for e in entries:
        ts = _parse_ts(e.get("timestamp"))
        if ts is not None and ts >= cutoff:
            window.append(e)

    def _mbps(key: str) -> List[float]:
        return [float(e.get(key) or 0) / 1_000_000 for e in window]

    def _ms(key: str) -> List[float]:
        return [float(e[key]) for e in window if e.get(key) is not None]

    downloads = _mbps("downloadBps")
    uploads = _mbps("uploadBps")
    pings = _ms("latencyMs")
    jitters = _ms("jitterMs")

    def _avg(values: List[float]) -> Optional[float]:
        return round(statistics.fmean(values), 2) if values else None

    return {
        "totalTests": len(window),
        "days": days,
        "avgDownload": _avg(downloads),
        "avgUpload": _avg(uploads),
        "avgPing": _avg(pings),
        "avgJitter": _avg(jitters),
        "maxDownload": round(max(downloads), 2) if downloads else None,
        "maxUpload": round(max(uploads), 2) if uploads else None,
        "minPing": round(min(pings), 2) if pings else None,
    }


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def format_history_table(entries: List[Dict[str, Any]]) -> List[dict]:
    """
    Transform raw history entries into a flat list of dicts suitable for
    tabular display.  Each dict has: timestamp, server, ping, jitter,
    download, upload (speeds in bps).
    """
    rows = []
    for e in entries:
        ts_raw = e.get("timestamp", "")
        ts = _parse_ts(ts_raw)
        if ts is not None:
            label = ts.astimezone().strftime("%Y-%m-%d %H:%M")
        else:
            label = ts_raw[:16] if ts_raw else "?"

        rows.append({
            "timestamp": label,
            "server": e.get("serverLabel") or "?",
            "ping": e.get("latencyMs", 0),
            "jitter": e.get("jitterMs", 0),
            "download": e.get("downloadBps", 0),
            "upload": e.get("uploadBps", 0),
        })
    return rows


def sparkline(values: List[float]) -> str:
    """Single-line Unicode sparkline chart."""
    if not values:
        return ""
    bars = "▁▂▃▄▅▆▇█"
    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        bars[min(int((v - lo) / span * (len(bars) - 1)), len(bars) - 1)]
        for v in values
    )
