"""
Extraction pipeline: navigate → wait for readiness → capture HTML →
capture screenshot → extract links, run once per session.

The first failing step ends the run. Whatever was captured before it is kept
on the result together with the cause, so the writer can persist a partial
capture. Every step is bounded by the time left on the session deadline.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Type

from .config import Config
from .session import Session
from .utils import CaptureFailure, DeadlineExceeded, NavigationFailure, ScrapeError

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    NAVIGATING = "navigating"
    WAITING_VISIBLE = "waiting_visible"
    CAPTURING_HTML = "capturing_html"
    CAPTURING_SCREENSHOT = "capturing_screenshot"
    EXTRACTING_LINKS = "extracting_links"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ScrapeResult:
    target: str
    host_key: str
    html: Optional[str] = None
    screenshot: bytes = b""
    links: List[str] = field(default_factory=list)
    state: PipelineState = PipelineState.NAVIGATING
    failed_step: Optional[PipelineState] = None
    error: Optional[ScrapeError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def filtered_links(self) -> List[str]:
        return [link for link in self.links if link]


async def _bounded(session: Session, step: PipelineState, op: Callable[[], Awaitable], on_error: Type[ScrapeError]):
    if session.expired():
        raise DeadlineExceeded(
            f"deadline of {session.timeout:.0f}s passed before {step.value}",
            target=session.target, host=session.host_key,
        )
    try:
        return await asyncio.wait_for(op(), timeout=session.remaining())
    except asyncio.TimeoutError as e:
        raise DeadlineExceeded(
            f"deadline of {session.timeout:.0f}s exceeded during {step.value}",
            target=session.target, host=session.host_key,
        ) from e
    except ScrapeError:
        raise
    except Exception as e:
        raise on_error(f"{step.value}: {e}", target=session.target, host=session.host_key) from e


async def run(session: Session, cfg: Config) -> ScrapeResult:
    """Run the fixed extraction sequence against *session*. Never raises for step failures."""
    engine = session.engine
    result = ScrapeResult(target=session.target, host_key=session.host_key)

    async def _navigate():
        await engine.navigate(session.target)

    async def _wait():
        await engine.wait_visible(cfg.ready_selector)

    async def _html():
        result.html = await engine.capture_outer_html(cfg.html_selector)

    async def _screenshot():
        result.screenshot = bytes(await engine.capture_full_page_screenshot(cfg.screenshot_quality) or b"")

    async def _links():
        result.links = list(await engine.evaluate(cfg.links_script) or [])

    steps = (
        (PipelineState.NAVIGATING, _navigate, NavigationFailure),
        (PipelineState.WAITING_VISIBLE, _wait, NavigationFailure),
        (PipelineState.CAPTURING_HTML, _html, CaptureFailure),
        (PipelineState.CAPTURING_SCREENSHOT, _screenshot, CaptureFailure),
        (PipelineState.EXTRACTING_LINKS, _links, CaptureFailure),
    )

    for state, op, on_error in steps:
        result.state = state
        if state is PipelineState.NAVIGATING:
            logger.info("[%s] Navigating...", session.host_key)
        else:
            logger.debug("[%s] %s", session.host_key, state.value)
        try:
            await _bounded(session, state, op, on_error)
        except ScrapeError as e:
            result.failed_step = state
            result.state = PipelineState.FAILED
            result.error = e
            return result

    result.state = PipelineState.DONE
    return result
