"""
Structured log lines for the scanner.

Every line is a single JSON object: {"ts": ..., "event": ..., <fields>} with sorted
keys so runs can be diffed. Hebrew labels are kept as-is (ensure_ascii=False).
"""
from __future__ import annotations
import os
import sys
import json
import logging
from datetime import datetime, timezone

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(stream=sys.stdout, level=LOG_LEVEL, format="%(message)s")
log = logging.getLogger("customs_scanner")


def iso_ts() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def jlog(event: str, level: str = "info", **fields) -> None:
    rec = {"ts": iso_ts(), "event": event}
    rec.update(fields)
    line = json.dumps(rec, ensure_ascii=False, separators=(",", ":"), sort_keys=True, default=str)
    lvl = level.lower()
    if lvl in ("error", "err", "critical"):
        log.error(line)
    elif lvl in ("warn", "warning"):
        log.warning(line)
    elif lvl == "debug":
        log.debug(line)
    else:
        log.info(line)
