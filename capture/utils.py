from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# ========== Environment helpers ==========

def getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None and v.strip() else default

def getenv_int(name: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except ValueError:
        return default
    if min_val is not None:
        val = max(min_val, val)
    if max_val is not None:
        val = min(max_val, val)
    return val

def getenv_float(name: str, default: float, min_val: Optional[float] = None, max_val: Optional[float] = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except ValueError:
        return default
    if min_val is not None:
        val = max(min_val, val)
    if max_val is not None:
        val = min(max_val, val)
    return val

def getenv_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


# parse CSV-ish envs into tuples (trim blanks)
def getenv_csv(name: str, default_csv: str) -> Tuple[str, ...]:
    raw = getenv_str(name, default_csv)
    parts = [x.strip() for x in raw.split(",")]
    return tuple(p for p in parts if p)

# ========== Exceptions ==========

class ScrapeError(Exception):
    """Base class for per-target failures. Carries the target/host for log context."""

    kind = "scrape_error"

    def __init__(self, message: str, *, target: Optional[str] = None, host: Optional[str] = None) -> None:
        super().__init__(message)
        self.target = target
        self.host = host

    def __str__(self) -> str:
        return f"{self.kind}: {self.args[0] if self.args else ''}"

class InvalidURL(ScrapeError):
    """Target could not be parsed into an http(s) URL with a host."""
    kind = "invalid_url"

class NavigationFailure(ScrapeError):
    """Page could not be loaded, or never became visible."""
    kind = "navigation_failure"

class DeadlineExceeded(ScrapeError):
    """The session's timeout elapsed before the pipeline finished."""
    kind = "deadline_exceeded"

class CaptureFailure(ScrapeError):
    """A capture or evaluation step failed after successful navigation."""
    kind = "capture_failure"

class PersistenceFailure(ScrapeError):
    """Writing one artifact to disk failed."""
    kind = "persistence_failure"

    def __init__(self, message: str, *, path: Optional[Path] = None, **kw) -> None:
        super().__init__(message, **kw)
        self.path = path

# ========== File I/O ==========

ARTIFACT_MODE = 0o644

def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Write bytes atomically using a NamedTemporaryFile and os.replace on the same filesystem.
    Re-running overwrites the previous file in one step; readers never see a half-written artifact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile("wb", dir=str(path.parent), prefix=f".{path.name}.", delete=False)
    try:
        with tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        # NamedTemporaryFile creates 0600
        os.chmod(tmp.name, ARTIFACT_MODE)
        os.replace(tmp.name, path)
    except BaseException:
        # leave no temp droppings behind, whichever step failed
        try:
            os.unlink(tmp.name)
        except OSError:
            pass
        raise

def atomic_write_text(path: Path, data: str, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, data.encode(encoding))

# ========== Playwright helpers ==========

async def try_close(obj, timeout_ms: int = 1500) -> None:
    """
    Best-effort, bounded-time close for a Playwright page or context.
    Used on session teardown, where the target may already be gone after a timeout.
    """
    if obj is None:
        return
    try:
        await asyncio.wait_for(obj.close(), timeout=max(0.1, (timeout_ms or 1) / 1000.0))
    except Exception as e:
        logger.debug("close(%s) failed: %s", type(obj).__name__, e)
