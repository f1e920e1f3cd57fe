from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Dict, Iterator, Optional

CONSOLE_FORMAT = "%(asctime)s %(levelname)s: %(message)s"
TARGET_FILE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# HostKey the running task is scraping; unset outside a target unit
_ACTIVE_HOST: ContextVar[Optional[str]] = ContextVar("_ACTIVE_HOST", default=None)


class _ActiveHostFilter(logging.Filter):
    """Pass only records emitted by a task currently inside target_context(host_key)."""

    def __init__(self, host_key: str) -> None:
        super().__init__()
        self.host_key = host_key

    def filter(self, record: logging.LogRecord) -> bool:
        return _ACTIVE_HOST.get() == self.host_key


class LoggingExtension:
    """
    Console logging for the whole run and, when *log_dir* is set, one
    ``<log_dir>/<host_key>.log`` per target.

    Modules keep logging through ``logging.getLogger(__name__)``. A record is
    copied into a target's file only when it was emitted inside that target's
    :meth:`target_context`, so concurrent units never end up in each other's
    files.
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        *,
        global_level: int = logging.INFO,
        per_target_level: Optional[int] = None,
    ) -> None:
        self.log_dir = log_dir
        self.per_target_level = per_target_level if per_target_level is not None else global_level
        self._files: Dict[str, logging.FileHandler] = {}

        root = logging.getLogger()
        for h in list(root.handlers):
            root.removeHandler(h)
        console = logging.StreamHandler()
        console.setLevel(global_level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%Y/%m/%d %H:%M:%S"))
        root.addHandler(console)
        # lowest of the two so a verbose target file still gets its records
        root.setLevel(min(global_level, self.per_target_level))

    def _target_file(self, host_key: str) -> logging.FileHandler:
        fh = self._files.get(host_key)
        if fh is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(self.log_dir / f"{host_key}.log", mode="a", encoding="utf-8")
            fh.setLevel(self.per_target_level)
            fh.addFilter(_ActiveHostFilter(host_key))
            fh.setFormatter(logging.Formatter(TARGET_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            logging.getLogger().addHandler(fh)
            self._files[host_key] = fh
        return fh

    @contextmanager
    def target_context(self, host_key: str) -> Iterator[None]:
        """
        Route everything the current task logs into *host_key*'s file until
        the block exits. Targets sharing a HostKey share one file.
        """
        fh = self._target_file(host_key) if self.log_dir is not None else None
        token = _ACTIVE_HOST.set(host_key)
        try:
            yield
        finally:
            _ACTIVE_HOST.reset(token)
            if fh is not None:
                fh.flush()

    def close(self) -> None:
        root = logging.getLogger()
        for fh in self._files.values():
            root.removeHandler(fh)
            fh.close()
        self._files.clear()
