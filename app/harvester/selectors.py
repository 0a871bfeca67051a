from __future__ import annotations

"""Selectors and attribute hints for the applicant list workflow."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ListSelectors:
    """Selector hints for the hiring applicant list.

    Every tuple is an ordered priority list: the first selector that yields an
    element wins. Markup ships in several variants, so most roles carry a
    primary selector followed by broader fallbacks.
    """

    list_container: Tuple[str, ...] = (
        "ul.hiring-applicants__list",
        ".hiring-applicants__container",
        "main",
    )
    list_item: Tuple[str, ...] = (
        "li.hiring-applicants__list-item",
        "[data-view-name='job-applicant-list-item']",
    )
    item_target: Tuple[str, ...] = (
        ".artdeco-entity-lockup__subtitle",
        ".artdeco-entity-lockup__caption",
        ".artdeco-entity-lockup__metadata",
    )

    # Identity strategies, in priority order.
    identity_primary: str = ".hiring-people-card__title"
    identity_title: str = ".artdeco-entity-lockup__title"
    identity_link: str = ".artdeco-entity-lockup__title a"
    identity_image: str = "img.presence-entity__image"

    detail_view: Tuple[str, ...] = ("#hiring-detail-root",)
    # Looked up inside the detail view.
    detail_label: Tuple[str, ...] = (
        ".hiring-profile-card__name",
        "h1",
        ".artdeco-entity-lockup__title",
    )

    action_primary: Tuple[str, ...] = (
        "a.inline-flex.align-items-center.link-without-visited-state[href]",
    )
    action_catch_all: Tuple[str, ...] = (
        "a[href*='/ambry/']",
        "a[aria-label*='Download' i]",
        "a[aria-label*='İndir' i]",
        "a[href*='download' i]",
    )
    overflow_opener: Tuple[str, ...] = (
        "button[aria-label*='More actions' i]",
        "button[aria-label*='Diğer' i]",
        "button.artdeco-dropdown__trigger",
    )
    overflow_item: Tuple[str, ...] = (
        ".artdeco-dropdown__content a[href*='download' i]",
        ".artdeco-dropdown__content [role='button']:has-text('Download')",
        ".artdeco-dropdown__content [role='button']:has-text('İndir')",
    )

    obstruction: Tuple[str, ...] = (
        "[data-test-document-scan-pending]",
        "text=/being scanned/i",
        "text=/taranıyor/i",
    )

    page_button: Tuple[str, ...] = ("li[data-test-pagination-page-btn]",)
    page_button_inner: str = "button"
    active_page: Tuple[str, ...] = ("button[aria-current='true']",)
    next_page: Tuple[str, ...] = (
        "button[aria-label='Next']",
        "button[aria-label='Sonraki']",
        "button.artdeco-pagination__button--next",
    )

    job_title: Tuple[str, ...] = (".artdeco-entity-lockup__title",)

    # URL fragment that must stay in the address bar while on the list view.
    list_url_marker: str = "/applicants"


DEFAULT_SELECTORS = ListSelectors()

__all__ = ["ListSelectors", "DEFAULT_SELECTORS"]
