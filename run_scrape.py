from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List, Optional

from capture.browser import resolve_executable
from capture.config import Config, load_config
from capture.orchestrator import scrape_all, scrape_single, split_targets
from extensions.logging import LoggingExtension

USAGE = "Usage: page-capture --url=<URL1,URL2> [--brave] [--exec-path=<path>]"


# ----------------------------
# CLI parsing
# ----------------------------

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Render pages in a headless browser and save HTML, a full-page screenshot and the outbound links"
    )
    p.add_argument("--url", type=str, default="", help="Comma-separated list of URLs to scrape (e.g., https://example.com,https://google.com)")
    p.add_argument("--brave", action="store_true", help="Use Brave browser (default location)")
    p.add_argument("--exec-path", type=str, default="", help="Path to browser executable")
    p.add_argument("--single", action="store_true", help="Single-target mode: fixed filenames, links printed, non-zero exit on failure")
    p.add_argument("--output-dir", type=Path, default=None, help="Root folder for html/, screenshots/ and url/ (default: CAPTURE_OUTPUT_DIR or cwd)")
    p.add_argument("--timeout", type=float, default=None, help="Per-target deadline in seconds (default 45, or 30 with --single)")
    p.add_argument("--max-concurrent", type=int, default=None, help="Cap on targets scraped at once (0 = one task per target)")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Console/file log level")
    return p.parse_args(argv)


# ----------------------------
# Small helpers
# ----------------------------

def _apply_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    changes = {}
    if args.output_dir is not None:
        changes["output_dir"] = args.output_dir
        changes["log_dir"] = args.output_dir / "logs"
    if args.timeout is not None and args.timeout > 0:
        key = "single_target_timeout_s" if args.single else "per_target_timeout_s"
        changes[key] = float(args.timeout)
    if args.max_concurrent is not None:
        changes["max_concurrent_targets"] = max(0, int(args.max_concurrent))
    return dataclasses.replace(cfg, **changes) if changes else cfg


# ----------------------------
# Main
# ----------------------------

async def main_async(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    if not args.url.strip():
        print(USAGE)
        return 1

    level = getattr(logging, args.log_level)
    cfg = _apply_overrides(load_config(), args)
    log_ext = LoggingExtension(cfg.log_dir if cfg.per_target_logs else None, global_level=level)
    root_logger = logging.getLogger("run_scrape")

    exec_path = resolve_executable(args.exec_path or None, args.brave)

    try:
        if args.single:
            targets = split_targets(args.url, cfg.target_delimiter)
            if len(targets) != 1:
                root_logger.error("--single takes exactly one URL, got %d", len(targets))
                return 1
            ok = await scrape_single(targets[0], cfg, executable_path=exec_path)
            return 0 if ok else 1

        await scrape_all(args.url, cfg, executable_path=exec_path, log_ext=log_ext)
        return 0
    finally:
        log_ext.close()


# ----------------------------
# Entrypoint
# ----------------------------

def main(argv: Optional[List[str]] = None) -> None:
    sys.exit(asyncio.run(main_async(argv)))

if __name__ == "__main__":
    main()
