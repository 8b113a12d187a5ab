"""
Output formatting -- JSON export, plain text, and CSV.
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from speedprobe.stats import format_rate


def create_result_json(
    result,  # noqa: ANN001 (MeasurementResult)
    endpoint: Optional[Dict[str, Any]] = None,
    record_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the exported JSON document for one measurement."""
    doc: Dict[str, Any] = {
        "timestamp": result.timestamp.isoformat(),
        "server": endpoint or {"label": result.server_label},
        "ping": result.latency_ms,
        "jitter": result.jitter_ms,
        "download": {
            "bps": round(result.download_bps, 2),
            "mbps": round(result.download_mbps, 2),
        },
        "upload": {
            "bps": round(result.upload_bps, 2),
            "mbps": round(result.upload_mbps, 2),
        },
    }

    details = result.to_dict()
    if "latency" in details:
        doc["latency"] = details["latency"]
    for key in ("download", "upload"):
        if key in details:
            doc[key].update(details[key])

    if record_id:
        doc["id"] = record_id
    return doc


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except (IOError, OSError) as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise IOError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text / CSV helpers
# ---------------------------------------------------------------------------

def format_text_result(result) -> str:  # noqa: ANN001 (MeasurementResult)
    sep = "=" * 50
    mid = "-" * 50
    return (
        f"{sep}\n"
        f"Speed Test Results\n"
        f"{sep}\n"
        f"Server: {result.server_label}\n"
        f"{mid}\n"
        f"Ping: {result.latency_ms:.1f} ms (jitter: {result.jitter_ms:.1f} ms)\n"
        f"Download: {format_rate(result.download_bps)}\n"
        f"Upload: {format_rate(result.upload_bps)}\n"
        f"{sep}"
    )


def _csv_escape(value: str) -> str:
    if any(c in value for c in ',"\n\r'):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_csv_header() -> str:
    return "timestamp,server,ping_ms,jitter_ms,download_bps,upload_bps"


def format_csv_row(result) -> str:  # noqa: ANN001 (MeasurementResult)
    return ",".join([
        result.timestamp.isoformat(),
        _csv_escape(result.server_label),
        f"{result.latency_ms:.1f}",
        f"{result.jitter_ms:.1f}",
        f"{result.download_bps:.2f}",
        f"{result.upload_bps:.2f}",
    ])


def append_csv(path: str, result) -> None:  # noqa: ANN001
    """Append a single CSV row, writing the header if the file is new."""
    write_header = not os.path.isfile(path) or os.path.getsize(path) == 0
    with open(path, "a", encoding="utf-8") as fh:
        if write_header:
            fh.write(format_csv_header() + "\n")
        fh.write(format_csv_row(result) + "\n")
