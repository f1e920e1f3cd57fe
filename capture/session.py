from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Callable, Optional

from .browser import Allocator
from .engine import PlaywrightEngine, RenderingEngine
from .utils import DeadlineExceeded, NavigationFailure, try_close

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One target bound to one isolated browser context and a hard deadline."""
    target: str
    host_key: str
    timeout: float
    deadline: float          # absolute, in event-loop time
    engine: RenderingEngine

    def remaining(self) -> float:
        return self.deadline - asyncio.get_running_loop().time()

    def expired(self) -> bool:
        return self.remaining() <= 0


# (target, host_key, timeout) -> async context manager yielding a Session
SessionFactory = Callable[[str, str, float], AsyncContextManager[Session]]


def new_session(
    target: str,
    host_key: str,
    timeout: float,
    engine: RenderingEngine,
    *,
    deadline: Optional[float] = None,
) -> Session:
    """*deadline* defaults to now + *timeout*; pass it when setup already spent part of the budget."""
    if deadline is None:
        deadline = asyncio.get_running_loop().time() + timeout
    return Session(
        target=target,
        host_key=host_key,
        timeout=timeout,
        deadline=deadline,
        engine=engine,
    )


@asynccontextmanager
async def open_session(
    allocator: Allocator,
    target: str,
    host_key: str,
    timeout: float,
) -> AsyncIterator[Session]:
    """
    Open a fresh BrowserContext + Page for *target*. The context is private to
    this session; closing it or hitting its deadline has no effect on siblings.
    Page and context are closed on every exit path, including cancellation.

    The deadline starts here, so a slow context or tab open eats into the
    time the pipeline gets afterwards.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    context = None
    page = None
    try:
        try:
            context = await asyncio.wait_for(allocator.new_context(), timeout=deadline - loop.time())
            page = await asyncio.wait_for(context.new_page(), timeout=deadline - loop.time())
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded(
                f"deadline of {timeout:.0f}s exceeded while opening browser tab", target=target, host=host_key
            ) from e
        except Exception as e:
            raise NavigationFailure(f"could not open browser tab: {e}", target=target, host=host_key) from e

        engine = PlaywrightEngine(page, wait_until=allocator.wait_until, screenshot_type=allocator.screenshot_type)
        logger.debug("[%s] session opened (%.1fs of %.1fs left)", host_key, deadline - loop.time(), timeout)
        yield new_session(target, host_key, timeout, engine, deadline=deadline)
    finally:
        await try_close(page, allocator.close_timeout_ms)
        await try_close(context, allocator.close_timeout_ms)
        logger.debug("[%s] session closed", host_key)


def session_factory_for(allocator: Allocator) -> SessionFactory:
    def _factory(target: str, host_key: str, timeout: float) -> AsyncContextManager[Session]:
        return open_session(allocator, target, host_key, timeout)
    return _factory


def fixed_engine_factory(make_engine: Callable[[str], RenderingEngine]) -> SessionFactory:
    """
    SessionFactory over any RenderingEngine, one engine per target. Used to drive
    the orchestrator without a browser (tests, dry runs).
    """
    @asynccontextmanager
    async def _factory(target: str, host_key: str, timeout: float) -> AsyncIterator[Session]:
        engine = make_engine(target)
        try:
            yield new_session(target, host_key, timeout, engine)
        finally:
            close = getattr(engine, "close", None)
            if close is not None:
                await close()
    return _factory
