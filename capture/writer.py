from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from extensions.output_paths import artifact_path

from .config import Config
from .pipeline import ScrapeResult
from .utils import PersistenceFailure, atomic_write_bytes, atomic_write_text

logger = logging.getLogger(__name__)

ARTIFACT_KINDS = ("html", "screenshot", "urls")


@dataclass
class WriteReport:
    host_key: str
    written: Dict[str, Path] = field(default_factory=dict)
    failed: Dict[str, PersistenceFailure] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def rfc3339_now() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def format_links(target: str, links: List[str], timestamp: Optional[str] = None) -> str:
    lines = [
        f"Scraped URL: {target}",
        f"Timestamp: {timestamp or rfc3339_now()}",
        "--- Extracted URLs ---",
    ]
    lines.extend(link for link in links if link)
    return "\n".join(lines) + "\n"


def _write(report: WriteReport, kind: str, path: Path, do_write: Callable[[], None], target: str) -> None:
    try:
        do_write()
    except OSError as e:
        err = PersistenceFailure(f"writing {kind} to {path}: {e}", path=path, target=target, host=report.host_key)
        report.failed[kind] = err
        logger.error("[%s] Error writing %s: %s", report.host_key, kind, e)
        return
    report.written[kind] = path


def persist(host_key: str, target: str, result: ScrapeResult, cfg: Config) -> WriteReport:
    """
    Write the artifacts *result* holds. Each kind is attempted independently;
    a failed write is recorded on the report and does not stop the others.
    """
    report = WriteReport(host_key=host_key)
    root = cfg.output_dir

    if result.failed and not cfg.persist_partial:
        report.skipped.extend(ARTIFACT_KINDS)
        logger.info("[%s] Pipeline failed; nothing persisted", host_key)
        return report

    if result.html:
        path = artifact_path(root, "html", host_key)
        _write(report, "html", path, lambda: atomic_write_text(path, result.html), target)
        if "html" in report.written:
            logger.info("[%s] HTML content saved to '%s'", host_key, path)
    else:
        report.skipped.append("html")

    if result.screenshot:
        shot = artifact_path(root, "screenshot", host_key, screenshot_type=cfg.screenshot_type)
        _write(report, "screenshot", shot, lambda: atomic_write_bytes(shot, result.screenshot), target)
        if "screenshot" in report.written:
            logger.info("[%s] Screenshot saved to '%s'", host_key, shot)
    else:
        report.skipped.append("screenshot")

    links = result.filtered_links
    if links:
        urls = artifact_path(root, "urls", host_key)
        _write(report, "urls", urls, lambda: atomic_write_text(urls, format_links(target, links)), target)
        if "urls" in report.written:
            logger.info("[%s] URLs saved to '%s' (%d urls)", host_key, urls, len(links))
    else:
        report.skipped.append("urls")
        if not result.failed:
            logger.info("[%s] No URLs found.", host_key)

    return report
