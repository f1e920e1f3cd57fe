from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import AsyncExitStack, nullcontext
from typing import Iterable, List, Optional, Sequence, TextIO, Tuple, Union

from extensions.logging import LoggingExtension
from extensions.output_paths import ensure_output_dirs, single_target_path

from . import pipeline
from .browser import browser_allocator
from .config import Config
from .hosts import normalize
from .session import SessionFactory, session_factory_for
from .utils import InvalidURL, ScrapeError, atomic_write_bytes, atomic_write_text
from .writer import WriteReport, persist

logger = logging.getLogger(__name__)


def split_targets(raw: str, delimiter: str = ",") -> List[str]:
    """Split a delimited target list, trim each entry, drop the empty ones."""
    return [t.strip() for t in (raw or "").split(delimiter) if t.strip()]


def _plan(targets: Sequence[str], cfg: Config) -> List[Tuple[str, Optional[str]]]:
    """
    Pair each target with its HostKey (None when the URL is malformed; the unit
    reports that itself). Targets sharing a HostKey would race on the same
    output files: warn about them, or drop the later ones under 'skip'.
    """
    planned: List[Tuple[str, Optional[str]]] = []
    first_seen: dict[str, str] = {}
    for target in targets:
        try:
            key: Optional[str] = normalize(target)
        except InvalidURL:
            key = None
        if key is not None and key in first_seen:
            if cfg.duplicate_hosts == "skip":
                logger.warning(
                    "[%s] Skipping %s: host already claimed by %s", key, target, first_seen[key]
                )
                continue
            logger.warning(
                "[%s] %s and %s share output files; last writer wins", key, first_seen[key], target
            )
        elif key is not None:
            first_seen[key] = target
        planned.append((target, key))
    return planned


async def scrape_target(
    target: str,
    cfg: Config,
    session_factory: SessionFactory,
    *,
    host_key: Optional[str] = None,
    timeout: Optional[float] = None,
    log_ext: Optional[LoggingExtension] = None,
) -> Optional[WriteReport]:
    """
    One unit: normalize → open session → run pipeline → persist.
    Every per-target failure is logged here and contained; only cancellation propagates.
    """
    logger.info("[%s] parsing URL...", target)
    try:
        key = host_key or normalize(target)
    except InvalidURL as e:
        logger.error("Error parsing URL %s: %s", target, e)
        return None

    with log_ext.target_context(key) if log_ext else nullcontext():
        try:
            budget = timeout if timeout is not None else cfg.per_target_timeout_s
            async with session_factory(target, key, budget) as session:
                result = await pipeline.run(session, cfg)

            if result.failed:
                logger.error(
                    "[%s] Error: Failed to scrape (%s). Details: %s",
                    key, result.failed_step.value if result.failed_step else "?", result.error,
                )
            report = persist(key, target, result, cfg)
            if not result.failed and report.ok:
                logger.info("[%s] Done", key)
            return report
        except ScrapeError as e:
            logger.error("[%s] Error: Failed to scrape. Details: %s", key, e)
            return None
        except Exception:
            logger.exception("[%s] Unexpected error", key)
            return None


async def scrape_all(
    targets: Union[str, Iterable[str]],
    cfg: Config,
    *,
    session_factory: Optional[SessionFactory] = None,
    executable_path: Optional[str] = None,
    log_ext: Optional[LoggingExtension] = None,
) -> None:
    """
    Scrape every target concurrently, one task per target, and return once all
    of them have finished. A failing or slow target never short-circuits the
    others. Per-target outcomes are logged, not returned.
    """
    if isinstance(targets, str):
        targets = split_targets(targets, cfg.target_delimiter)
    else:
        targets = [t.strip() for t in targets if t and t.strip()]

    planned = _plan(targets, cfg)
    logger.info("Starting scrape for %d targets: %s", len(planned), [t for t, _ in planned])
    if not planned:
        return

    ensure_output_dirs(cfg.output_dir)

    async with AsyncExitStack() as stack:
        if session_factory is None:
            try:
                allocator = await stack.enter_async_context(browser_allocator(cfg, executable_path))
            except Exception as e:
                # no browser, no sessions: every planned target fails the same way
                for t, k in planned:
                    logger.error("[%s] Error: Failed to scrape. Details: browser launch failed: %s", k or t, e)
                logger.info("All scrapes completed.")
                return
            session_factory = session_factory_for(allocator)

        sem = asyncio.Semaphore(cfg.max_concurrent_targets) if cfg.max_concurrent_targets > 0 else None

        async def _unit(target: str, key: Optional[str]) -> None:
            if sem is None:
                await scrape_target(target, cfg, session_factory, host_key=key, log_ext=log_ext)
                return
            async with sem:
                await scrape_target(target, cfg, session_factory, host_key=key, log_ext=log_ext)

        tasks = [
            asyncio.create_task(_unit(t, k), name=f"scrape:{k or t}")
            for t, k in planned
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for (t, _), r in zip(planned, results):
            if isinstance(r, BaseException) and not isinstance(r, asyncio.CancelledError):
                logger.error("[%s] Unit crashed: %r", t, r)

    logger.info("All scrapes completed.")


async def scrape_single(
    target: str,
    cfg: Config,
    *,
    session_factory: Optional[SessionFactory] = None,
    executable_path: Optional[str] = None,
    out: Optional[TextIO] = None,
) -> bool:
    """
    Single-target variant: shorter deadline, fixed filenames at the output
    root, links printed instead of saved. Returns False on any failure.
    """
    out = out or sys.stdout
    try:
        key = normalize(target)
    except InvalidURL as e:
        logger.error("Error parsing URL %s: %s", target, e)
        return False

    async with AsyncExitStack() as stack:
        if session_factory is None:
            try:
                allocator = await stack.enter_async_context(browser_allocator(cfg, executable_path))
            except Exception as e:
                logger.error("[%s] Error: Failed to scrape. Details: browser launch failed: %s", key, e)
                return False
            session_factory = session_factory_for(allocator)
        try:
            async with session_factory(target, key, cfg.single_target_timeout_s) as session:
                result = await pipeline.run(session, cfg)
        except ScrapeError as e:
            logger.error("[%s] Error: Failed to scrape. Details: %s", key, e)
            return False

    if result.failed:
        logger.error("[%s] Error: Failed to scrape. Details: %s", key, result.error)
        return False

    root = cfg.output_dir
    html_path = single_target_path(root, "html")
    shot_path = single_target_path(root, "screenshot", screenshot_type=cfg.screenshot_type)
    try:
        atomic_write_text(html_path, result.html or "")
        logger.info("HTML content saved to '%s'", html_path)
        if result.screenshot:
            atomic_write_bytes(shot_path, result.screenshot)
            logger.info("Screenshot saved to '%s'", shot_path)
    except OSError as e:
        logger.error("[%s] Error writing output: %s", key, e)
        return False

    links = result.filtered_links
    print("--- Extracted URLs ---", file=out)
    for link in links:
        print(link, file=out)
    logger.info("[%s] %d urls extracted", key, len(links))
    return True
