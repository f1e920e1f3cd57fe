from __future__ import annotations

from typing import List, Literal, Protocol, runtime_checkable

from playwright.async_api import Page


@runtime_checkable
class RenderingEngine(Protocol):
    """
    The five operations the extraction pipeline needs from a browser.
    Anything else the backend can do stays behind this seam, so the pipeline
    can be driven by a fake in tests.
    """

    async def navigate(self, url: str) -> None: ...

    async def wait_visible(self, selector: str) -> None: ...

    async def capture_outer_html(self, selector: str) -> str: ...

    async def capture_full_page_screenshot(self, quality: int) -> bytes: ...

    async def evaluate(self, script: str) -> List[str]: ...


class PlaywrightEngine:
    """RenderingEngine backed by one Playwright page."""

    def __init__(
        self,
        page: Page,
        *,
        wait_until: str = "load",
        screenshot_type: Literal["png", "jpeg"] = "png",
    ) -> None:
        self.page = page
        self.wait_until = wait_until
        self.screenshot_type = screenshot_type

    async def navigate(self, url: str) -> None:
        # timeout=0: the session deadline bounds every step, not Playwright's own default
        await self.page.goto(url, wait_until=self.wait_until, timeout=0)

    async def wait_visible(self, selector: str) -> None:
        await self.page.wait_for_selector(selector, state="visible", timeout=0)

    async def capture_outer_html(self, selector: str) -> str:
        html = await self.page.locator(selector).first.evaluate("el => el.outerHTML", timeout=0)
        return html or ""

    async def capture_full_page_screenshot(self, quality: int) -> bytes:
        kwargs = {"full_page": True, "type": self.screenshot_type, "timeout": 0}
        # Playwright rejects quality for png
        if self.screenshot_type == "jpeg":
            kwargs["quality"] = int(quality)
        return await self.page.screenshot(**kwargs)

    async def evaluate(self, script: str) -> List[str]:
        value = await self.page.evaluate(script)
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            value = [value]
        return [v if isinstance(v, str) else "" for v in value]
