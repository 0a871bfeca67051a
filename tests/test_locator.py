from __future__ import annotations

import pytest

from app.harvester import locator as locator_module
from app.harvester.error_codes import AutomationError
from app.harvester.locator import ElementLocator, Role
from app.harvester.selectors import DEFAULT_SELECTORS as S
from tests.fakes import FakeElement, FakeListSite, ItemSpec, no_sleep


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(locator_module, "_harvester_event", _record)
    return events


def _selected_site(action: str | None) -> FakeListSite:
    site = FakeListSite([[ItemSpec("Ada Lovelace", action=action)]])
    site.selected = site.pages[0][0]
    return site


def test_primary_strategy_wins_without_fallback_event(event_recorder) -> None:
    site = _selected_site("primary")
    locator = ElementLocator(site, sleep=no_sleep)

    detail = locator.resolve(Role.DETAIL_VIEW)
    action = locator.resolve(Role.ACTION_CONTROL, scope=detail)

    assert action is not None
    assert action.key == "action"
    assert event_recorder == []


def test_catch_all_strategy_logs_fallback(event_recorder) -> None:
    site = _selected_site("catch_all")
    locator = ElementLocator(site, sleep=no_sleep)

    action = locator.resolve(Role.ACTION_CONTROL, scope=locator.resolve(Role.DETAIL_VIEW))

    assert action is not None
    assert event_recorder == [
        ("locate", {"role": "action_control", "strategy": "catch_all", "kind": "fallback"})
    ]


def test_menu_strategy_opens_overflow_and_searches_page_root() -> None:
    site = _selected_site("menu")
    locator = ElementLocator(site, sleep=no_sleep)
    detail = locator.resolve(Role.DETAIL_VIEW)

    assert locator.resolve(Role.ACTION_CONTROL, scope=detail, interactive=False) is None
    assert site.menu_open is False

    action = locator.resolve(Role.ACTION_CONTROL, scope=detail)
    assert site.menu_open is True
    assert action is not None and action.key == "menu_item"


def test_resolve_all_returns_rendered_items() -> None:
    site = FakeListSite([[ItemSpec("A1"), ItemSpec("B2"), ItemSpec("C3")]], batch_size=2)
    locator = ElementLocator(site, sleep=no_sleep)
    assert len(locator.resolve_all(Role.LIST_ITEM)) == 2
    assert locator.resolve_all(Role.DETAIL_VIEW) == []


def test_invisible_obstruction_is_ignored() -> None:
    class _Site(FakeListSite):
        def query_all(self, selector):
            if selector == S.obstruction[0]:
                return [FakeElement(visible=False)]
            return super().query_all(selector)

    locator = ElementLocator(_Site([]), sleep=no_sleep)
    assert locator.is_present(Role.OBSTRUCTION) is False


def test_query_errors_are_treated_as_absent() -> None:
    class _Broken(FakeListSite):
        def query(self, selector):
            raise AutomationError("frame detached")

    locator = ElementLocator(_Broken([]), sleep=no_sleep)
    assert locator.resolve(Role.LIST_CONTAINER) is None


def test_wait_for_polls_until_element_appears() -> None:
    site = FakeListSite([[ItemSpec("Ada Lovelace")]])
    polls: list[float] = []

    def _sleep(seconds: float) -> None:
        polls.append(seconds)
        if len(polls) == 2:
            site.selected = site.pages[0][0]

    locator = ElementLocator(site, sleep=_sleep, poll_interval=0.01)

    assert locator.wait_for(Role.DETAIL_VIEW, timeout=30) is not None
    assert polls == [0.01, 0.01]


def test_wait_for_times_out() -> None:
    locator = ElementLocator(FakeListSite([]), sleep=no_sleep, poll_interval=0.0)
    assert locator.wait_for(Role.DETAIL_VIEW, timeout=0.01) is None
