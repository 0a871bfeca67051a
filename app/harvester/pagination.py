from __future__ import annotations

"""Position tracking and navigation for the windowed page-button bar."""

import re
import time
from typing import Callable, List, Optional, Tuple

from . import config
from .dom import Element, PageSession
from .error_codes import AutomationError
from .events import ProgressReporter
from .humanize import HumanizedInputSynthesizer
from .locator import ElementLocator, Role
from .logging_utils import _harvester_event
from .utils import log_line

_PAGE_NUMBER_RE = re.compile(r"\d+")
_ELLIPSIS_MARKERS = ("...", "…")


def parse_page_number(text: Optional[str]) -> Optional[int]:
    """Return the first integer in *text*; ``None`` for ellipsis/blank buttons."""

    match = _PAGE_NUMBER_RE.search(text or "")
    return int(match.group(0)) if match else None


class PageNavigator:
    def __init__(
        self,
        session: PageSession,
        locator: ElementLocator,
        humanizer: HumanizedInputSynthesizer,
        reporter: Optional[ProgressReporter] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        advance_timeout: float = config.ADVANCE_TIMEOUT_SECONDS,
        seek_timeout: float = config.SEEK_ACTIVATE_TIMEOUT_SECONDS,
        max_iterations: int = config.SEEK_MAX_ITERATIONS,
        page_load_wait: float = config.PAGE_LOAD_WAIT_SECONDS,
        page_wait: Tuple[float, float] = (config.PAGE_WAIT_MIN_SECONDS, config.PAGE_WAIT_MAX_SECONDS),
        poll_interval: float = config.POLL_INTERVAL_SECONDS,
    ) -> None:
        self.session = session
        self.locator = locator
        self.humanizer = humanizer
        self.reporter = reporter or ProgressReporter()
        self._sleep = sleep
        self.advance_timeout = advance_timeout
        self.seek_timeout = seek_timeout
        self.max_iterations = max_iterations
        self.page_load_wait = page_load_wait
        self.page_wait = page_wait
        self.poll_interval = poll_interval

    # ------------------------------------------------------------------
    # Reading position
    # ------------------------------------------------------------------

    def get_active_page(self) -> int:
        """Return the active page number, or 1 when it cannot be read."""

        try:
            active = self.locator.resolve(Role.ACTIVE_PAGE)
            if active is None:
                return 1
            number = parse_page_number(active.read_text())
            return number if number is not None else 1
        except Exception as exc:  # noqa: BLE001
            log_line(f"[PAGINATION][WARN] Could not determine active page number: {exc}")
            return 1

    def _page_items(self) -> List[Element]:
        return self.locator.resolve_all(Role.PAGE_BUTTON)

    def _active_index(self, items: List[Element]) -> int:
        for index, item in enumerate(items):
            if self.locator.resolve(Role.ACTIVE_PAGE, scope=item) is not None:
                return index
        return -1

    def _numbered_buttons(self) -> List[Tuple[int, Element]]:
        out: List[Tuple[int, Element]] = []
        for item in self._page_items():
            button = item.query(self.locator.selectors.page_button_inner)
            if button is None:
                continue
            try:
                number = parse_page_number(button.read_text())
            except AutomationError:
                continue
            if number is not None:
                out.append((number, button))
        return out

    def has_next(self) -> bool:
        """True when the active page is not the last rendered page button."""

        try:
            items = self._page_items()
            index = self._active_index(items)
        except AutomationError as exc:
            log_line(f"[PAGINATION][WARN] Could not inspect pagination: {exc}")
            return False
        return index != -1 and index + 1 < len(items)

    # ------------------------------------------------------------------
    # Moving
    # ------------------------------------------------------------------

    def _poll(self, predicate: Callable[[], bool], timeout: float) -> bool:
        deadline = time.monotonic() + max(0.0, timeout)
        while True:
            if predicate():
                return True
            if time.monotonic() >= deadline:
                return False
            self._sleep(self.poll_interval)

    def _click(self, element: Element) -> bool:
        try:
            element.scroll_into_view()
            self.humanizer.micro_pause()
            self.humanizer.move_to(self.session, element)
            element.click()
            return True
        except AutomationError as exc:
            _harvester_event("pagination", step="click_failed", error=str(exc))
            return False

    def _next_target(self) -> Optional[Element]:
        next_button = self.locator.resolve(Role.NEXT_PAGE)
        if next_button is not None:
            try:
                if next_button.is_enabled():
                    return next_button
            except AutomationError:
                pass

        items = self._page_items()
        index = self._active_index(items)
        if index == -1 or index + 1 >= len(items):
            return None
        candidate = items[index + 1].query(self.locator.selectors.page_button_inner)
        if candidate is None:
            return None
        try:
            text = candidate.read_text()
        except AutomationError:
            text = ""
        if any(marker in text for marker in _ELLIPSIS_MARKERS):
            # The expander both reveals and selects the following page.
            log_line("[PAGINATION] Next page candidate is an ellipsis; clicking it to advance.")
        return candidate

    def advance(self) -> bool:
        """Move to the next page; True once the active number has increased."""

        current = self.get_active_page()
        try:
            target = self._next_target()
        except AutomationError as exc:
            log_line(f"[PAGINATION][WARN] Could not locate next page control: {exc}")
            target = None

        if target is None:
            self.reporter.info('Could not find "Next" button. End of list?')
            return False

        self.reporter.info("Moving to the next page")
        if not self._click(target):
            self.reporter.warning("Clicking the next page control failed")
            return False

        if not self._poll(lambda: self.get_active_page() > current, self.advance_timeout):
            self.reporter.warning(
                "Page navigation verification failed (active page number did not increase)"
            )
            return False

        _harvester_event("pagination", step="advanced", from_page=current, to_page=self.get_active_page())
        self.humanizer.random_wait(*self.page_wait)
        return True

    def seek(self, target_page: int) -> int:
        """Navigate to *target_page* and return the page actually reached.

        Uses the highest visible intermediate page to jump ahead when the
        target is not rendered yet. Bounded by ``max_iterations``; an
        unreachable target ends with a warning at the best page reached.
        """

        if target_page <= 1:
            return self.get_active_page()

        self.reporter.info(f"Navigating to start page: {target_page}...")
        try:
            self.session.scroll_to_bottom(None)
            self._sleep(self.page_load_wait)
        except AutomationError as exc:
            log_line(f"[PAGINATION][WARN] Error scrolling to pagination bar: {exc}")

        current = self.get_active_page()
        iterations = 0

        while current < target_page:
            iterations += 1
            if iterations > self.max_iterations:
                self.reporter.warning(
                    f"Pagination loop limit reached ({self.max_iterations}). "
                    f"Stopping navigation at page {current}."
                )
                break

            buttons = self._numbered_buttons()

            exact = next((button for number, button in buttons if number == target_page), None)
            if exact is not None:
                self.reporter.info(f"Found target page {target_page}, clicking...")
                self._click(exact)
                if not self._poll(lambda: self.get_active_page() == target_page, self.seek_timeout):
                    log_line(
                        f"[PAGINATION][WARN] Timed out waiting for page {target_page} to become active, continuing."
                    )
                self._sleep(self.page_load_wait)
                current = self.get_active_page()
                break

            candidates = [(number, button) for number, button in buttons if current < number < target_page]
            if candidates:
                jump_number, jump_button = max(candidates, key=lambda pair: pair[0])
                self.reporter.info(
                    f"Smart jump: page {jump_number} is closer to target {target_page}"
                )
                self._click(jump_button)
                self._sleep(self.page_load_wait)
                current = self.get_active_page()
                continue

            current = self.get_active_page()
            if current >= target_page:
                break

            log_line(
                f"[PAGINATION] On page {current}, moving towards {target_page} (next button/ellipsis)."
            )
            if not self.advance():
                self.reporter.warning("Could not click next page, stopping navigation.")
                break
            self._sleep(self.page_load_wait)
            current = self.get_active_page()

        if current < target_page:
            self.reporter.warning(
                f"Could not reach page {target_page}; continuing from page {current}."
            )
        _harvester_event("pagination", step="seek_done", target=target_page, reached=current, iterations=iterations)
        return current


__all__ = ["PageNavigator", "parse_page_number"]
