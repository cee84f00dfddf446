"""
Playwright + axe-core rendering capability

One Chromium instance is launched per factory and shared; every session is a
separate browser context so cookies, storage and proxy never leak between
jobs. axe-core is injected into the page from its minified source.
"""

import base64
from pathlib import Path
from typing import Any, Optional

import httpx
from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from core.config import get_settings
from core.logging import get_logger
from d3_assessment.assessors.base import RenderSession, SessionFactory
from d3_assessment.exceptions import (
    EngineInitializationError,
    FetchError,
    TransientNetworkError,
    has_retryable_signature,
)
from d3_assessment.models import PageContent, RawViolation, RenderedPage

logger = get_logger(__name__, domain="d3")

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]

EXTRACT_CONTENT_JS = """
() => ({
  title: document.title,
  text: document.body ? document.body.innerText : '',
  headings: Array.from(document.querySelectorAll('h1,h2,h3,h4,h5,h6'))
    .map(h => ({ level: h.tagName, text: h.innerText.trim() }))
    .filter(h => h.text.length > 0),
  links: Array.from(document.querySelectorAll('a'))
    .map(a => ({
      text: a.innerText.trim(),
      href: a.href,
      aria_label: a.getAttribute('aria-label')
    }))
    .filter(l => l.text.length > 0 || l.aria_label),
  images: Array.from(document.querySelectorAll('img')).map(img => ({
    src: img.src,
    alt: img.alt || '',
    has_alt: img.hasAttribute('alt'),
    width: img.width,
    height: img.height
  })),
  forms: Array.from(document.querySelectorAll('form')).map(form => ({
    action: form.action,
    method: form.method,
    inputs: Array.from(form.querySelectorAll('input, textarea, select')).map(input => ({
      type: input.type,
      name: input.name,
      id: input.id,
      has_label: !!(input.labels && input.labels.length),
      aria_label: input.getAttribute('aria-label'),
      placeholder: input.placeholder || null
    }))
  })),
  buttons: Array.from(document.querySelectorAll('button')).map(btn => ({
    text: btn.innerText.trim(),
    type: btn.type,
    disabled: btn.disabled,
    aria_label: btn.getAttribute('aria-label')
  }))
})
"""

AXE_AVAILABLE_JS = "() => typeof window.axe !== 'undefined'"

RUN_AXE_JS = """
async () => await window.axe.run({ resultTypes: ['violations', 'incomplete'] })
"""


def translate_playwright_error(error: Exception, url: str) -> FetchError:
    """Map a Playwright failure onto the fetch error taxonomy"""
    if isinstance(error, PlaywrightTimeoutError):
        return TransientNetworkError(f"Navigation timeout: {error}", url=url)
    message = str(error)
    if has_retryable_signature(message):
        return TransientNetworkError(message, url=url)
    return FetchError(message, url=url)


class PlaywrightSession(RenderSession):
    """A browser context plus the single page it renders"""

    def __init__(self, context: BrowserContext, axe_source: str, screenshot_quality: int = 60):
        self._context = context
        self._axe_source = axe_source
        self._screenshot_quality = screenshot_quality
        self._page: Optional[Page] = None
        self._url = ""

    async def render(self, url: str, timeout_ms: int) -> RenderedPage:
        self._url = url
        try:
            self._page = await self._context.new_page()
            await self._page.goto(url, wait_until="networkidle", timeout=timeout_ms)

            content = await self._page.evaluate(EXTRACT_CONTENT_JS)
            screenshot = await self._page.screenshot(
                type="jpeg",
                quality=self._screenshot_quality,
                full_page=False,
            )
            user_agent = await self._page.evaluate("() => navigator.userAgent")
        except PlaywrightError as e:
            raise translate_playwright_error(e, url) from e

        return RenderedPage(
            content=PageContent.from_dict(content),
            screenshot=base64.b64encode(screenshot).decode("ascii"),
            viewport=self._page.viewport_size,
            user_agent=user_agent or "",
        )

    async def evaluate_rules(self) -> list[RawViolation]:
        if self._page is None:
            raise EngineInitializationError("Rules evaluated before the page was rendered", url=self._url)

        try:
            await self._page.add_script_tag(content=self._axe_source)
            available = await self._page.evaluate(AXE_AVAILABLE_JS)
        except PlaywrightError as e:
            if has_retryable_signature(str(e)):
                raise TransientNetworkError(str(e), url=self._url) from e
            raise EngineInitializationError(f"axe-core failed to load: {e}", url=self._url) from e

        if not available:
            raise EngineInitializationError("axe-core failed to initialize in page context", url=self._url)

        try:
            results: dict[str, Any] = await self._page.evaluate(RUN_AXE_JS)
        except PlaywrightError as e:
            raise translate_playwright_error(e, self._url) from e

        violations = [RawViolation.from_axe(v) for v in (results or {}).get("violations") or []]
        logger.info(f"axe-core found {len(violations)} violations on {self._url}")
        return violations

    async def close(self) -> None:
        try:
            await self._context.close()
        except PlaywrightError as e:
            # Browser may already be gone after a crash
            logger.warning(f"Failed to close browser context for {self._url}: {e}")


class PlaywrightSessionFactory(SessionFactory):
    """Launches Chromium once and hands out proxy-bound contexts"""

    def __init__(
        self,
        axe_script_path: Optional[str] = None,
        axe_script_url: Optional[str] = None,
        headless: bool = True,
    ):
        settings = get_settings()
        self.axe_script_path = axe_script_path or settings.axe_script_path
        self.axe_script_url = axe_script_url or settings.axe_script_url
        self.screenshot_quality = settings.screenshot_quality
        self.request_timeout = settings.request_timeout
        self.headless = headless

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._axe_source: Optional[str] = None
        self._started = False

    async def start(self) -> None:
        if self._started:
            return

        self._axe_source = await self._load_axe_source()

        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
        except PlaywrightError:
            await self._playwright.stop()
            self._playwright = None
            raise

        self._started = True
        logger.info("Playwright browser launched successfully")

    async def open_session(self, proxy: Optional[str] = None) -> PlaywrightSession:
        if not self.is_started or self._browser is None:
            await self.start()

        context_options: dict[str, Any] = {}
        if proxy:
            context_options["proxy"] = {"server": proxy}

        context = await self._browser.new_context(**context_options)
        return PlaywrightSession(context, self._axe_source, self.screenshot_quality)

    async def close(self) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
            logger.debug("Browser closed")
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
            logger.debug("Playwright stopped")
        self._started = False

    async def _load_axe_source(self) -> str:
        """Read axe.min.js from disk, or download it once per factory"""
        if self.axe_script_path:
            try:
                return Path(self.axe_script_path).read_text(encoding="utf-8")
            except OSError as e:
                raise EngineInitializationError(f"Cannot read axe-core from {self.axe_script_path}: {e}") from e

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(float(self.request_timeout))) as client:
                response = await client.get(self.axe_script_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise EngineInitializationError(f"Cannot download axe-core from {self.axe_script_url}: {e}") from e

        logger.info(f"Downloaded axe-core ({len(response.text)} bytes)")
        return response.text
