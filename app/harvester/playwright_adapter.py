"""Playwright implementation of the DOM capability interface."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from playwright.sync_api import (
    BrowserContext,
    Download,
    Error as PWError,
    Locator,
    Mouse,
    Page,
    Playwright,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .dom import Region
from .error_codes import AutomationError, AutomationTimeout, FatalRunError
from .logging_utils import _harvester_event
from .utils import log_line

LAUNCH_ARGS = [
    "--start-maximized",
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--window-position=0,0",
]

_WEBDRIVER_INIT_SCRIPT = (
    "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
)


def _is_target_closed_error(exc: Exception) -> bool:
    """Return ``True`` if *exc* indicates the Playwright target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


def _ms(seconds: Optional[float]) -> float:
    return (config.ELEMENT_TIMEOUT_SECONDS if seconds is None else seconds) * 1000


@contextmanager
def _translated(action: str) -> Iterator[None]:
    """Re-raise Playwright errors as harvester exceptions."""

    try:
        yield
    except PWTimeout as exc:
        raise AutomationTimeout(f"{action} timed out: {exc}") from exc
    except PWError as exc:
        if _is_target_closed_error(exc):
            raise FatalRunError(f"Browser closed during {action}: {exc}") from exc
        raise AutomationError(f"{action} failed: {exc}") from exc


class PlaywrightElement:
    def __init__(self, locator: Locator) -> None:
        self._locator = locator

    def query(self, selector: str) -> Optional["PlaywrightElement"]:
        with _translated(f"query {selector!r}"):
            candidate = self._locator.locator(selector).first
            if candidate.count() == 0:
                return None
        return PlaywrightElement(candidate)

    def query_all(self, selector: str) -> List["PlaywrightElement"]:
        with _translated(f"query_all {selector!r}"):
            base = self._locator.locator(selector)
            count = base.count()
        return [PlaywrightElement(base.nth(index)) for index in range(count)]

    def bounding_region(self) -> Optional[Region]:
        with _translated("bounding_box"):
            box = self._locator.bounding_box(timeout=_ms(None))
        if not box:
            return None
        return Region(box["x"], box["y"], box["width"], box["height"])

    def click(self, *, force: bool = False, timeout: Optional[float] = None) -> None:
        with _translated("click"):
            self._locator.click(force=force, timeout=_ms(timeout))

    def read_text(self) -> str:
        with _translated("inner_text"):
            return self._locator.inner_text(timeout=_ms(None)) or ""

    def get_attribute(self, name: str) -> Optional[str]:
        with _translated(f"get_attribute {name!r}"):
            return self._locator.get_attribute(name, timeout=_ms(None))

    def scroll_into_view(self) -> None:
        with _translated("scroll_into_view"):
            self._locator.scroll_into_view_if_needed(timeout=_ms(None))

    def is_visible(self) -> bool:
        with _translated("is_visible"):
            return self._locator.is_visible()

    def is_enabled(self) -> bool:
        with _translated("is_enabled"):
            return self._locator.is_enabled(timeout=_ms(None))


class PlaywrightArtifact:
    def __init__(self, download: Download) -> None:
        self._download = download

    @property
    def suggested_filename(self) -> str:
        return self._download.suggested_filename or ""

    def save_to(self, path: Path) -> None:
        with _translated("save download"):
            self._download.save_as(str(path))


class PlaywrightPointer:
    def __init__(self, mouse: Mouse) -> None:
        self._mouse = mouse

    def move(self, x: float, y: float) -> None:
        with _translated("mouse.move"):
            self._mouse.move(x, y)

    def down(self) -> None:
        with _translated("mouse.down"):
            self._mouse.down()

    def up(self) -> None:
        with _translated("mouse.up"):
            self._mouse.up()

    def wheel(self, delta_x: float, delta_y: float) -> None:
        with _translated("mouse.wheel"):
            self._mouse.wheel(delta_x, delta_y)


class PlaywrightSession:
    """A single browser tab exposed through the capability interface."""

    def __init__(self, page: Page) -> None:
        self.page = page
        self.pointer = PlaywrightPointer(page.mouse)

    def navigate(self, url: str, *, timeout: Optional[float] = None) -> None:
        _harvester_event("nav", step="goto", url=url)
        with _translated(f"goto({url!r})"):
            self.page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=_ms(config.NAV_TIMEOUT_SECONDS if timeout is None else timeout),
            )

    def current_url(self) -> str:
        return self.page.url

    def reload(self, *, timeout: Optional[float] = None) -> None:
        _harvester_event("nav", step="reload", url=self.page.url)
        with _translated("reload"):
            self.page.reload(
                wait_until="domcontentloaded",
                timeout=_ms(config.NAV_TIMEOUT_SECONDS if timeout is None else timeout),
            )

    def query(self, selector: str) -> Optional[PlaywrightElement]:
        with _translated(f"query {selector!r}"):
            candidate = self.page.locator(selector).first
            if candidate.count() == 0:
                return None
        return PlaywrightElement(candidate)

    def query_all(self, selector: str) -> List[PlaywrightElement]:
        with _translated(f"query_all {selector!r}"):
            base = self.page.locator(selector)
            count = base.count()
        return [PlaywrightElement(base.nth(index)) for index in range(count)]

    def viewport(self) -> Optional[Region]:
        size = self.page.viewport_size
        if size:
            return Region(0, 0, size["width"], size["height"])
        # Persistent contexts launched maximized have no fixed viewport.
        with _translated("viewport"):
            dims = self.page.evaluate("() => [window.innerWidth, window.innerHeight]")
        if not dims:
            return None
        return Region(0, 0, dims[0], dims[1])

    def scroll_to_bottom(self, container_selector: Optional[str] = None) -> None:
        with _translated("scroll_to_bottom"):
            if container_selector:
                target = self.page.locator(container_selector).first
                if target.count():
                    target.evaluate("el => { el.scrollTop = el.scrollHeight; }")
                return
            self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")

    def expect_artifact(self, trigger: Callable[[], None], *, timeout: float) -> PlaywrightArtifact:
        with _translated("expect_download"):
            with self.page.expect_download(timeout=timeout * 1000) as download_info:
                trigger()
            return PlaywrightArtifact(download_info.value)

    def close(self) -> None:
        try:
            self.page.close()
        except PWError as exc:
            log_line(f"Error closing Playwright page: {exc}")


class PlaywrightSessionProvider:
    """Launch a persistent Chromium profile and hand out its first tab.

    The profile directory keeps cookies between runs, so the user signs in
    once in a headed browser and later runs reuse that session.
    """

    def __init__(
        self,
        user_data_dir: Optional[Path] = None,
        *,
        locale: Optional[str] = None,
        timezone: Optional[str] = None,
        launcher: Callable[[], Playwright] = lambda: sync_playwright().start(),
    ) -> None:
        self.user_data_dir = Path(user_data_dir or config.USER_DATA_DIR)
        self.locale = locale or config.LOCALE
        self.timezone = timezone or config.TIMEZONE
        self._launcher = launcher
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None

    def open(self, *, headless: bool = False) -> PlaywrightSession:
        self.user_data_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = self._launcher()
        try:
            self._context = self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(self.user_data_dir),
                headless=headless,
                args=LAUNCH_ARGS,
                no_viewport=True,
                accept_downloads=True,
                locale=self.locale,
                timezone_id=self.timezone,
                user_agent=config.USER_AGENT,
            )
        except PWError as exc:
            self.close()
            raise FatalRunError(f"Could not launch browser: {exc}") from exc

        self._context.add_init_script(_WEBDRIVER_INIT_SCRIPT)
        page = self._context.pages[0] if self._context.pages else self._context.new_page()
        self._verify_stealth(page)
        _harvester_event("browser", step="launched", headless=headless, profile=str(self.user_data_dir))
        return PlaywrightSession(page)

    def _verify_stealth(self, page: Page) -> None:
        try:
            if page.evaluate("() => navigator.webdriver"):
                log_line("[BROWSER][WARN] navigator.webdriver is still true")
        except PWError as exc:
            log_line(f"[BROWSER] Could not verify webdriver flag: {exc}")

    def close(self) -> None:
        if self._context is not None:
            try:
                self._context.close()
            except PWError as exc:
                log_line(f"Error closing Playwright context: {exc}")
        self._context = None
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PWError as exc:
                log_line(f"Error stopping Playwright: {exc}")
            self._playwright = None


__all__ = [
    "PlaywrightElement",
    "PlaywrightArtifact",
    "PlaywrightPointer",
    "PlaywrightSession",
    "PlaywrightSessionProvider",
    "LAUNCH_ARGS",
]
