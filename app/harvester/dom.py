from __future__ import annotations

"""Capability interface the harvester needs from a browser automation library.

The engine, locator and navigator only talk to these protocols. Adapters
(see ``playwright_adapter``) translate library errors into
``AutomationTimeout`` / ``AutomationError``.
"""

from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, Protocol, Union


class Point(NamedTuple):
    x: float
    y: float


class Region(NamedTuple):
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)


class Element(Protocol):
    def query(self, selector: str) -> Optional["Element"]: ...

    def query_all(self, selector: str) -> List["Element"]: ...

    def bounding_region(self) -> Optional[Region]: ...

    def click(self, *, force: bool = False, timeout: Optional[float] = None) -> None: ...

    def read_text(self) -> str: ...

    def get_attribute(self, name: str) -> Optional[str]: ...

    def scroll_into_view(self) -> None: ...

    def is_visible(self) -> bool: ...

    def is_enabled(self) -> bool: ...


class Artifact(Protocol):
    @property
    def suggested_filename(self) -> str: ...

    def save_to(self, path: Path) -> None: ...


class Pointer(Protocol):
    def move(self, x: float, y: float) -> None: ...

    def down(self) -> None: ...

    def up(self) -> None: ...

    def wheel(self, delta_x: float, delta_y: float) -> None: ...


class PageSession(Protocol):
    pointer: Pointer

    def navigate(self, url: str, *, timeout: Optional[float] = None) -> None: ...

    def current_url(self) -> str: ...

    def reload(self, *, timeout: Optional[float] = None) -> None: ...

    def query(self, selector: str) -> Optional[Element]: ...

    def query_all(self, selector: str) -> List[Element]: ...

    def viewport(self) -> Optional[Region]: ...

    def scroll_to_bottom(self, container_selector: Optional[str] = None) -> None: ...

    def expect_artifact(self, trigger: Callable[[], None], *, timeout: float) -> Artifact: ...

    def close(self) -> None: ...


Scope = Union[Element, PageSession]


class SessionProvider(Protocol):
    """Hands out an authenticated session and owns the browser behind it."""

    def open(self, *, headless: bool = False) -> PageSession: ...

    def close(self) -> None: ...


__all__ = ["Point", "Region", "Element", "Artifact", "Pointer", "PageSession", "Scope", "SessionProvider"]
