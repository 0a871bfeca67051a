from __future__ import annotations

"""Resolve logical UI roles to concrete elements via ordered strategies."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from . import config
from .dom import Element, PageSession, Scope
from .error_codes import AutomationError
from .logging_utils import _harvester_event
from .selectors import DEFAULT_SELECTORS, ListSelectors


class Role(str, Enum):
    LIST_CONTAINER = "list_container"
    LIST_ITEM = "list_item"
    ITEM_TARGET = "item_target"
    DETAIL_VIEW = "detail_view"
    DETAIL_LABEL = "detail_label"
    ACTION_CONTROL = "action_control"
    OBSTRUCTION = "obstruction"
    PAGE_BUTTON = "page_button"
    ACTIVE_PAGE = "active_page"
    NEXT_PAGE = "next_page"


def _safe_query(scope: Scope, selector: str) -> Optional[Element]:
    try:
        return scope.query(selector)
    except AutomationError as exc:
        _harvester_event("locate", step="query_error", selector=selector, error=str(exc))
        return None


def _safe_query_all(scope: Scope, selector: str) -> List[Element]:
    try:
        return list(scope.query_all(selector))
    except AutomationError as exc:
        _harvester_event("locate", step="query_all_error", selector=selector, error=str(exc))
        return []


def _is_visible(element: Element) -> bool:
    try:
        return element.is_visible()
    except AutomationError:
        return False


@dataclass(frozen=True)
class SelectorStrategy:
    """Try each selector in order inside the scope."""

    name: str
    selectors: Tuple[str, ...]
    require_visible: bool = False

    def find(self, scope: Scope, root: PageSession) -> Optional[Element]:
        for selector in self.selectors:
            element = _safe_query(scope, selector)
            if element is None:
                continue
            if self.require_visible and not _is_visible(element):
                continue
            return element
        return None

    def find_all(self, scope: Scope, root: PageSession) -> List[Element]:
        for selector in self.selectors:
            elements = _safe_query_all(scope, selector)
            if elements:
                return elements
        return []


@dataclass(frozen=True)
class MenuStrategy:
    """Open an overflow menu inside the scope and search its entries.

    Dropdown content is usually rendered in a portal, so entries are looked
    up from the page root rather than from the scope.
    """

    name: str
    opener_selectors: Tuple[str, ...]
    item_selectors: Tuple[str, ...]

    def find(self, scope: Scope, root: PageSession) -> Optional[Element]:
        opener = SelectorStrategy(f"{self.name}_opener", self.opener_selectors).find(scope, root)
        if opener is None:
            return None
        try:
            opener.click()
        except AutomationError as exc:
            _harvester_event("locate", step="menu_open_failed", strategy=self.name, error=str(exc))
            return None
        return SelectorStrategy(f"{self.name}_item", self.item_selectors).find(root, root)

    def find_all(self, scope: Scope, root: PageSession) -> List[Element]:
        element = self.find(scope, root)
        return [element] if element is not None else []


Strategy = Union[SelectorStrategy, MenuStrategy]


def build_strategies(selectors: ListSelectors) -> Dict[Role, Tuple[Strategy, ...]]:
    """Return the ordered strategy chain for every role."""

    return {
        Role.LIST_CONTAINER: (SelectorStrategy("container", selectors.list_container),),
        Role.LIST_ITEM: (SelectorStrategy("list_item", selectors.list_item),),
        Role.ITEM_TARGET: (SelectorStrategy("item_target", selectors.item_target),),
        Role.DETAIL_VIEW: (SelectorStrategy("detail_view", selectors.detail_view),),
        Role.DETAIL_LABEL: (SelectorStrategy("detail_label", selectors.detail_label),),
        Role.ACTION_CONTROL: (
            SelectorStrategy("primary_anchor", selectors.action_primary),
            SelectorStrategy("catch_all", selectors.action_catch_all),
            MenuStrategy("overflow_menu", selectors.overflow_opener, selectors.overflow_item),
        ),
        Role.OBSTRUCTION: (
            SelectorStrategy("obstruction", selectors.obstruction, require_visible=True),
        ),
        Role.PAGE_BUTTON: (SelectorStrategy("page_button", selectors.page_button),),
        Role.ACTIVE_PAGE: (SelectorStrategy("active_page", selectors.active_page),),
        Role.NEXT_PAGE: (
            SelectorStrategy("next_page", selectors.next_page, require_visible=True),
        ),
    }


class ElementLocator:
    """Resolve a :class:`Role` to an element, trying strategies in order."""

    def __init__(
        self,
        session: PageSession,
        selectors: ListSelectors = DEFAULT_SELECTORS,
        *,
        strategies: Optional[Dict[Role, Sequence[Strategy]]] = None,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.session = session
        self.selectors = selectors
        self._strategies = dict(strategies or build_strategies(selectors))
        self._sleep = sleep
        self._poll_interval = (
            config.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        )

    def strategies_for(self, role: Role) -> Tuple[Strategy, ...]:
        return tuple(self._strategies.get(role, ()))

    def resolve(
        self, role: Role, scope: Optional[Scope] = None, *, interactive: bool = True
    ) -> Optional[Element]:
        """Return the first element any strategy finds.

        ``interactive=False`` skips strategies that click to reveal content.
        """

        scope = self.session if scope is None else scope
        chain = self.strategies_for(role)
        for strategy in chain:
            if not interactive and isinstance(strategy, MenuStrategy):
                continue
            element = strategy.find(scope, self.session)
            if element is not None:
                if strategy is not chain[0]:
                    _harvester_event("locate", role=role.value, strategy=strategy.name, kind="fallback")
                return element
        return None

    def resolve_all(self, role: Role, scope: Optional[Scope] = None) -> List[Element]:
        scope = self.session if scope is None else scope
        for strategy in self.strategies_for(role):
            elements = strategy.find_all(scope, self.session)
            if elements:
                return elements
        return []

    def is_present(self, role: Role, scope: Optional[Scope] = None) -> bool:
        return self.resolve(role, scope) is not None

    def wait_for(
        self,
        role: Role,
        timeout: float,
        scope: Optional[Scope] = None,
        *,
        interactive: bool = True,
    ) -> Optional[Element]:
        """Poll :meth:`resolve` until it yields an element or *timeout* passes."""

        deadline = time.monotonic() + max(0.0, timeout)
        while True:
            element = self.resolve(role, scope, interactive=interactive)
            if element is not None:
                return element
            if time.monotonic() >= deadline:
                return None
            self._sleep(self._poll_interval)


__all__ = [
    "Role",
    "SelectorStrategy",
    "MenuStrategy",
    "ElementLocator",
    "build_strategies",
]
