from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from .utils import getenv_bool, getenv_int, getenv_str, getenv_float, getenv_csv

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/91.0.4472.124 Safari/537.36"
)

# Query run by the link-extraction step: every anchor's resolved href, in document order.
LINKS_SCRIPT = "Array.from(document.querySelectorAll('a')).map(a => a.href)"

# page.goto wait_until values Playwright accepts
NAV_WAIT_STATES = ("load", "domcontentloaded", "networkidle", "commit")


# ---------- Config dataclass ----------
@dataclass(frozen=True)
class Config:
    # Paths
    output_dir: Path
    log_dir: Path
    per_target_logs: bool

    # Targets & fan-out
    target_delimiter: str
    max_concurrent_targets: int                 # 0 = unbounded (one task per target)
    duplicate_hosts: Literal["warn", "skip"]    # policy for targets sharing a HostKey

    # Deadlines
    per_target_timeout_s: float                 # multi-target budget per session
    single_target_timeout_s: float              # single-target variant budget
    page_close_timeout_ms: int                  # bounded close on session teardown

    # Browser
    user_agent: str
    headless: bool
    executable_path: Optional[str]
    browser_args_extra: tuple[str, ...]
    viewport_width: int
    viewport_height: int

    # Pipeline
    navigation_wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"]
    ready_selector: str
    html_selector: str
    links_script: str
    screenshot_type: Literal["png", "jpeg"]
    screenshot_quality: int                     # only honoured for jpeg

    # Writer
    persist_partial: bool                       # write what was captured before a failure


# ---------- Loader ----------
def load_config() -> Config:
    output_dir = Path(getenv_str("CAPTURE_OUTPUT_DIR", "."))

    dup = getenv_str("DUPLICATE_HOSTS", "warn").strip().lower()
    if dup not in ("warn", "skip"):
        dup = "warn"

    wait_until = getenv_str("NAV_WAIT_UNTIL", "load").strip().lower()
    if wait_until not in NAV_WAIT_STATES:
        wait_until = "load"

    shot_type = getenv_str("SCREENSHOT_TYPE", "png").strip().lower()
    if shot_type not in ("png", "jpeg"):
        shot_type = "png"

    cfg = Config(
        output_dir=output_dir,
        log_dir=Path(getenv_str("CAPTURE_LOG_DIR", str(output_dir / "logs"))),
        per_target_logs=getenv_bool("PER_TARGET_LOGS", True),

        target_delimiter=getenv_str("TARGET_DELIMITER", ","),
        max_concurrent_targets=getenv_int("MAX_CONCURRENT_TARGETS", 0, 0, 1024),
        duplicate_hosts=dup,

        per_target_timeout_s=getenv_float("PER_TARGET_TIMEOUT_S", 45.0, 1.0, 600.0),
        single_target_timeout_s=getenv_float("SINGLE_TARGET_TIMEOUT_S", 30.0, 1.0, 600.0),
        page_close_timeout_ms=getenv_int("PAGE_CLOSE_TIMEOUT_MS", 1500, 100, 10000),

        user_agent=getenv_str("SCRAPER_USER_AGENT", DEFAULT_USER_AGENT),
        headless=getenv_bool("BROWSER_HEADLESS", True),
        executable_path=getenv_str("BROWSER_EXEC_PATH", "") or None,
        browser_args_extra=getenv_csv("BROWSER_ARGS_EXTRA", ""),
        viewport_width=getenv_int("VIEWPORT_WIDTH", 1366, 320, 7680),
        viewport_height=getenv_int("VIEWPORT_HEIGHT", 900, 240, 4320),

        navigation_wait_until=wait_until,
        ready_selector=getenv_str("READY_SELECTOR", "body"),
        html_selector=getenv_str("HTML_SELECTOR", "html"),
        links_script=LINKS_SCRIPT,
        screenshot_type=shot_type,
        screenshot_quality=getenv_int("SCREENSHOT_QUALITY", 90, 0, 100),

        persist_partial=getenv_bool("PERSIST_PARTIAL", True),
    )
    return cfg
