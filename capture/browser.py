from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Tuple

from playwright.async_api import async_playwright, Browser, BrowserContext, Playwright

from .config import Config

logger = logging.getLogger(__name__)

# ---------------------------
# Executable discovery
# ---------------------------

BRAVE_WINDOWS_PATHS = (
    "C:\\Program Files\\BraveSoftware\\Brave-Browser\\Application\\brave.exe",
    "C:\\Program Files (x86)\\BraveSoftware\\Brave-Browser\\Application\\brave.exe",
)
BRAVE_MAC_PATH = "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser"
BRAVE_LINUX_NAMES = ("brave-browser", "brave")


def find_brave() -> str:
    """
    Best-effort lookup of a Brave install. Falls back to the default Windows
    location even when it does not exist, so the launch error names a real path.
    """
    candidates: list[str] = []
    if sys.platform.startswith("win"):
        candidates.extend(BRAVE_WINDOWS_PATHS)
    elif sys.platform == "darwin":
        candidates.append(BRAVE_MAC_PATH)
    else:
        for name in BRAVE_LINUX_NAMES:
            found = shutil.which(name)
            if found:
                candidates.append(found)
    for path in candidates:
        if os.path.exists(path):
            return path
    return BRAVE_WINDOWS_PATHS[0]


def resolve_executable(exec_path: Optional[str], use_brave: bool) -> Optional[str]:
    """Explicit path wins, then Brave, else None (Playwright's bundled Chromium)."""
    if exec_path:
        logger.info("Using custom browser path: %s", exec_path)
        return exec_path
    if use_brave:
        path = find_brave()
        logger.info("Using Brave browser at: %s", path)
        return path
    return None


# ---------------------------
# Launch
# ---------------------------

# Benign aborts from tabs torn down mid-flight when a session deadline fires
_SILENCE_PATTERNS = (
    "net::ERR_ABORTED",
    "frame was detached",
    "Target closed",
    "Target page, context or browser has been closed",
    "Execution context was destroyed",
    "Navigation failed because page was closed",
    "TargetClosedError",
)


def _browser_args(cfg: Config) -> list[str]:
    args: list[str] = [
        "--disable-dev-shm-usage",
        "--no-sandbox",
        "--disable-extensions",
        "--disable-background-networking",
        "--disable-sync",
        "--mute-audio",
        "--no-default-browser-check",
        "--no-first-run",
        "--disable-default-apps",
    ]
    for a in cfg.browser_args_extra or ():
        if isinstance(a, str) and a.strip():
            args.append(a.strip())
    return args


def _install_loop_exception_silencer() -> Optional[Callable]:
    """
    Suppress loop-level 'Future exception was never retrieved' logs for
    Playwright futures orphaned when a session is closed on deadline expiry.
    Returns the handler it replaced; hand it back to _restore_loop_exception_handler.
    """
    loop = asyncio.get_running_loop()
    prev = loop.get_exception_handler()

    def _handler(_loop, context: dict):
        exc = context.get("exception")
        text = f"{exc!r}" if exc else context.get("message", "")
        if (text and any(p in text for p in _SILENCE_PATTERNS)) or type(exc).__name__ == "TargetClosedError":
            logger.debug("Suppressed loop exception: %s", text)
            return
        if prev:
            prev(_loop, context)
        else:
            _loop.default_exception_handler(context)

    loop.set_exception_handler(_handler)
    return prev


def _restore_loop_exception_handler(prev: Optional[Callable]) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.set_exception_handler(prev)


async def init_browser(cfg: Config, executable_path: Optional[str] = None) -> Tuple[Playwright, Browser]:
    exec_path = executable_path or cfg.executable_path

    pw = await async_playwright().start()
    try:
        browser = await pw.chromium.launch(
            headless=cfg.headless,
            args=_browser_args(cfg),
            executable_path=exec_path,
        )
    except Exception:
        await pw.stop()
        raise

    logger.info(
        "Browser initialized UA=%s headless=%s exec_path=%s",
        cfg.user_agent, cfg.headless, exec_path or "<bundled chromium>",
    )
    return pw, browser


async def shutdown_browser(pw: Playwright, browser: Browser) -> None:
    try:
        await browser.close()
    except Exception as e:
        logger.warning("Error while closing browser: %s", e)

    try:
        await pw.stop()
    except Exception as e:
        logger.warning("Error while stopping Playwright: %s", e)


# ---------------------------
# Allocator
# ---------------------------

@dataclass(frozen=True)
class Allocator:
    """
    Process-wide browser handle plus the per-session settings every context is
    created with. Read-only after launch: sessions derive their own
    BrowserContext from it and never mutate it.
    """
    browser: Browser
    user_agent: str
    viewport_width: int
    viewport_height: int
    wait_until: str
    screenshot_type: str
    close_timeout_ms: int

    async def new_context(self) -> BrowserContext:
        return await self.browser.new_context(
            user_agent=self.user_agent,
            viewport={"width": self.viewport_width, "height": self.viewport_height},
            java_script_enabled=True,
            ignore_https_errors=True,
        )


@asynccontextmanager
async def browser_allocator(cfg: Config, executable_path: Optional[str] = None) -> AsyncIterator[Allocator]:
    pw, browser = await init_browser(cfg, executable_path)
    prev_handler = _install_loop_exception_silencer()
    try:
        yield Allocator(
            browser=browser,
            user_agent=cfg.user_agent,
            viewport_width=cfg.viewport_width,
            viewport_height=cfg.viewport_height,
            wait_until=cfg.navigation_wait_until,
            screenshot_type=cfg.screenshot_type,
            close_timeout_ms=cfg.page_close_timeout_ms,
        )
    finally:
        await shutdown_browser(pw, browser)
        _restore_loop_exception_handler(prev_handler)
