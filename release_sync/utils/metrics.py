#!/usr/bin/env python3
"""Counters and timers for publishing runs, appended as JSONL.

One line per event under ``Config.METRICS_ROOT``. Values longer than 200
characters are clipped so release bodies never end up in the log.
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict

from release_sync.configs.config import Config

logger = logging.getLogger(__name__)


def _path() -> Path:
    root = Path(getattr(Config, "METRICS_ROOT", ".cache/release_sync/metrics"))
    root.mkdir(parents=True, exist_ok=True)
    return root / "metrics.log"


def incr(name: str, value: Any = 1, **kw) -> None:
    if not getattr(Config, "METRICS_ENABLED", True):
        return
    rec: Dict[str, Any] = {"ts": int(time.time()), "metric": name, "value": value}
    for k, v in kw.items():
        if isinstance(v, str) and len(v) > 200:
            rec[k] = v[:200] + "..."
        else:
            rec[k] = v
    line = json.dumps(rec, separators=(",", ":"), default=str) + "\n"
    # metrics never fail the call being measured
    try:
        with open(_path(), "a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.debug(f"could not write metric: metric={name} error={e}")


class Timer:
    """Record the wall time of a block as ``<name>.latency_s``."""

    def __init__(self, name: str, **kw):
        self.name = name
        self.kw = kw
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, *exc):
        dt = time.perf_counter() - self._t0
        incr(name=f"{self.name}.latency_s", value=round(dt, 4), **self.kw)
