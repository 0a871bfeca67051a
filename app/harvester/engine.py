"""List processing engine: walk one page of the virtualized list end-to-end.

Per item the engine runs ``select -> await detail -> locate action -> invoke``
and classifies whatever goes wrong:

- transient obstructions (a pending remote scan, detected by marker elements)
  trigger a reload recovery, bounded per item;
- context loss (the browser left the list view) navigates back to the source
  list and restores the cursor; it counts as an item attempt;
- timeouts and missing elements are retried with a constant backoff;
- anything else becomes a failure record and the run moves on.

Only :class:`~app.harvester.error_codes.FatalRunError` escapes
:meth:`ListProcessingEngine.process_page`.
"""

from __future__ import annotations

import random
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set
from urllib.parse import urlparse

from . import config
from .dom import Element, PageSession
from .error_codes import (
    AutomationError,
    AutomationTimeout,
    ContextLost,
    ElementNotFound,
    ErrorCode,
    FatalRunError,
    NavigationFailed,
    RecoveryFailed,
    TransientObstruction,
)
from .events import ProgressReporter
from .humanize import HumanizedInputSynthesizer
from .identity import extract_identity, first_line, identity_matches
from .locator import ElementLocator, Role
from .logging_utils import _harvester_event
from .pagination import PageNavigator
from .retry_policy import (
    RETRYABLE_ERROR_CODES,
    PermanentFailure,
    RetryableFailure,
    StepResult,
    Success,
    compute_backoff_seconds,
    decide_retry,
)
from .run_control import RunControl
from .selectors import DEFAULT_SELECTORS, ListSelectors
from .state import Checkpoint, CheckpointStore, FailureRecord
from .utils import build_artifact_path, disk_has_room, log_exception, log_line, normalize_whitespace


class PageOutcome(str, Enum):
    COMPLETE = "complete"
    LIMIT_REACHED = "limit_reached"
    STOPPED = "stopped"


@dataclass
class EngineSettings:
    """Tunables for one engine instance; defaults come from :mod:`config`."""

    max_items: int = config.MAX_ITEMS_DEFAULT
    min_wait_seconds: float = config.MIN_WAIT_SECONDS
    max_wait_seconds: float = config.MAX_WAIT_SECONDS
    idle_probability: float = config.IDLE_PROBABILITY
    break_interval: int = config.BREAK_INTERVAL
    break_min_seconds: float = config.BREAK_MIN_SECONDS
    break_max_seconds: float = config.BREAK_MAX_SECONDS
    select_max_attempts: int = config.SELECT_MAX_ATTEMPTS
    force_click_from_attempt: int = config.FORCE_CLICK_FROM_ATTEMPT
    item_max_attempts: int = config.ITEM_MAX_ATTEMPTS
    obstruction_max_reloads: int = config.OBSTRUCTION_MAX_RELOADS
    detail_attach_timeout: float = config.DETAIL_ATTACH_TIMEOUT_SECONDS
    detail_match_timeout: float = config.DETAIL_MATCH_TIMEOUT_SECONDS
    action_timeout: float = config.ACTION_ATTACH_TIMEOUT_SECONDS
    artifact_timeout: float = config.ARTIFACT_TIMEOUT_SECONDS
    fuzzy_threshold: float = config.FUZZY_MATCH_THRESHOLD
    fuzzy_match: bool = True
    checkpoint_every: int = config.CHECKPOINT_EVERY_SUCCESSES
    recovery_max_scroll_attempts: int = config.RECOVERY_MAX_SCROLL_ATTEMPTS
    recovery_stagnation_limit: int = config.RECOVERY_STAGNATION_LIMIT
    lazy_load_settle_seconds: float = config.LAZY_LOAD_SETTLE_SECONDS
    lazy_load_polls: int = config.LAZY_LOAD_POLLS
    list_visible_timeout: float = config.LIST_VISIBLE_TIMEOUT_SECONDS
    nav_timeout: float = config.NAV_TIMEOUT_SECONDS
    poll_interval: float = config.POLL_INTERVAL_SECONDS
    artifact_suffix: str = config.ARTIFACT_SUFFIX
    min_free_mb: int = config.MIN_FREE_MB
    invalid_identities: tuple = field(default_factory=lambda: tuple(config.INVALID_IDENTITIES))


@dataclass
class EngineStats:
    processed: int = 0
    skipped_duplicates: int = 0
    reload_recoveries: int = 0
    context_recoveries: int = 0
    succeeded: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class _StopRequested(Exception):
    """Raised internally when a stop is observed at a suspension point."""


class ListProcessingEngine:
    """Process the rendered list of the current page exactly once per identity."""

    def __init__(
        self,
        session: PageSession,
        *,
        output_dir: Path,
        source_url: str,
        store: Optional[CheckpointStore] = None,
        settings: Optional[EngineSettings] = None,
        selectors: ListSelectors = DEFAULT_SELECTORS,
        locator: Optional[ElementLocator] = None,
        humanizer: Optional[HumanizedInputSynthesizer] = None,
        reporter: Optional[ProgressReporter] = None,
        control: Optional[RunControl] = None,
        navigator: Optional[PageNavigator] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.session = session
        self.output_dir = Path(output_dir)
        self.source_url = source_url
        self.store = store
        self.settings = settings or EngineSettings()
        self.selectors = selectors
        self._sleep = sleep
        self.locator = locator or ElementLocator(
            session, selectors, sleep=sleep, poll_interval=self.settings.poll_interval
        )
        self.humanizer = humanizer or HumanizedInputSynthesizer(rng=rng, sleep=sleep)
        self.rng = rng or self.humanizer.rng
        self.reporter = reporter or ProgressReporter()
        self.control = control or RunControl(sleep=sleep)
        self.navigator = navigator

        self.processed_keys: Set[str] = set()
        self.success_count = 0
        self.failed_items: List[FailureRecord] = []
        self.current_page = 1
        self.stats = EngineStats()
        self._unsaved_successes = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def hydrate(self, checkpoint: Checkpoint) -> None:
        """Load processed keys, success count and failures from *checkpoint*."""

        self.processed_keys = set(checkpoint.processed_item_keys)
        self.success_count = checkpoint.success_count
        self.failed_items = list(checkpoint.failed_items)
        self.current_page = checkpoint.current_page
        _harvester_event(
            "state",
            phase="hydrate",
            processed=len(self.processed_keys),
            success_count=self.success_count,
            failed=len(self.failed_items),
            page=self.current_page,
        )

    def save_checkpoint(self, *, force: bool = False) -> None:
        """Persist progress; unforced saves are throttled by success count."""

        if self.store is None:
            return
        if not force and self._unsaved_successes < max(1, self.settings.checkpoint_every):
            return
        try:
            self.store.save(
                processed_item_keys=self.processed_keys,
                success_count=self.success_count,
                failed_items=self.failed_items,
                current_page=self.current_page,
            )
        except OSError as exc:
            log_line(f"[CHECKPOINT][WARN] Unable to save checkpoint: {exc}")
            return
        self._unsaved_successes = 0

    def limit_reached(self) -> bool:
        return self.settings.max_items > 0 and self.success_count >= self.settings.max_items

    def _on_pause(self) -> None:
        self.save_checkpoint(force=True)
        self.reporter.info("Paused; progress saved.")

    def _checkpoint_or_stop(self) -> None:
        if not self.control.wait_while_paused(on_pause=self._on_pause):
            raise _StopRequested()

    # ------------------------------------------------------------------
    # Page loop
    # ------------------------------------------------------------------

    def process_page(self, page_number: int) -> PageOutcome:
        """Process every rendered (and lazily loaded) item on the current page."""

        self.current_page = page_number
        index = 0
        _harvester_event("page", step="start", page=page_number)

        try:
            while True:
                self._checkpoint_or_stop()
                if self.limit_reached():
                    self.reporter.warning(
                        f"Maximum item limit reached: {self.settings.max_items}"
                    )
                    self.save_checkpoint(force=True)
                    return PageOutcome.LIMIT_REACHED

                items = self.locator.resolve_all(Role.LIST_ITEM)
                if index >= len(items):
                    if self._try_lazy_load(len(items)):
                        continue
                    log_line(f"[PAGE] Page {page_number} complete after {index} item(s).")
                    self.save_checkpoint(force=True)
                    return PageOutcome.COMPLETE

                identity = extract_identity(
                    items[index], self.selectors, invalid=self.settings.invalid_identities
                )
                if identity and identity in self.processed_keys:
                    self.stats.skipped_duplicates += 1
                    _harvester_event("item", step="skip_duplicate", identity=identity, index=index)
                    index += 1
                    continue

                before = self.success_count
                self._process_item(index, identity, items[index])
                index += 1
                self.reporter.stats(self.success_count, len(self.failed_items))
                self._pace(succeeded=self.success_count > before)
        except _StopRequested:
            self.reporter.warning("Process stopped by user.")
            self.save_checkpoint(force=True)
            return PageOutcome.STOPPED
        except FatalRunError as exc:
            _harvester_event("error", phase="page", page=page_number, error_code=exc.error_code, error=str(exc))
            self.save_checkpoint(force=True)
            raise

    def _process_item(self, index: int, identity: str, item: Element) -> None:
        label = identity or f"item_{self.current_page}_{index + 1}"
        attempt = 0
        reloads = 0
        recovered = False

        while True:
            try:
                if recovered:
                    item = self._item_at(index, identity)
                    recovered = False
                if self.locator.is_present(Role.OBSTRUCTION):
                    raise TransientObstruction("Obstruction marker visible before selection")
                result = self._run_workflow(item, identity)
            except TransientObstruction as exc:
                if reloads >= self.settings.obstruction_max_reloads:
                    self._fail(
                        identity,
                        label,
                        f"Transient obstruction persisted after {reloads} reload(s)",
                    )
                    return
                reloads += 1
                self.stats.reload_recoveries += 1
                _harvester_event("recovery", kind="reload", item=label, reload=reloads, error=str(exc))
                self._reload_recovery(index)
                recovered = True
                continue
            except ContextLost as exc:
                self.stats.context_recoveries += 1
                _harvester_event("recovery", kind="context", item=label, error=str(exc))
                self._context_recovery(index)
                recovered = True
                result = RetryableFailure(ErrorCode.CONTEXT_LOST, str(exc))
            except (_StopRequested, FatalRunError):
                raise
            except AutomationError as exc:
                if exc.error_code in RETRYABLE_ERROR_CODES:
                    result = RetryableFailure(exc.error_code, str(exc))
                else:
                    result = PermanentFailure(exc.error_code, str(exc))
            except Exception as exc:  # noqa: BLE001
                log_exception(f"[ITEM][ERROR] Unexpected error processing {label!r}")
                self._fail(identity, label, f"Unexpected error: {exc}")
                return

            attempt += 1

            if isinstance(result, Success):
                self._mark_processed(identity)
                return
            if isinstance(result, PermanentFailure):
                self._fail(identity, label, result.reason)
                return

            if not decide_retry(
                attempt, self.settings.item_max_attempts, error_code=result.code, item=label
            ):
                self._fail(identity, label, result.reason)
                return

            log_line(
                f"[ITEM] Retrying {label!r} after {result.code} "
                f"(attempt {attempt}/{self.settings.item_max_attempts})"
            )
            self._checkpoint_or_stop()
            self._sleep(compute_backoff_seconds(attempt))

    def _item_at(self, index: int, identity: str) -> Element:
        """Re-resolve the item at *index* after a recovery."""

        items = self.locator.resolve_all(Role.LIST_ITEM)
        if index >= len(items):
            self._list_recovery(index)
            items = self.locator.resolve_all(Role.LIST_ITEM)
        if index >= len(items):
            raise ElementNotFound(f"List item {index + 1} not rendered after recovery")

        if identity:
            current = extract_identity(items[index], self.selectors, invalid=self.settings.invalid_identities)
            if current != identity:
                for candidate in items:
                    if extract_identity(candidate, self.selectors, invalid=self.settings.invalid_identities) == identity:
                        log_line(f"[ITEM] {identity!r} moved after recovery; following it.")
                        return candidate
        return items[index]

    def _mark_processed(self, identity: str) -> None:
        if identity:
            self.processed_keys.add(identity)
        self.stats.processed += 1

    def _fail(self, identity: str, label: str, reason: str) -> None:
        record = FailureRecord(name=label, reason=reason, page_number=self.current_page)
        self.failed_items.append(record)
        self.stats.failed += 1
        self._mark_processed(identity)
        self.reporter.error(f"{label}: {reason}")
        self.reporter.failure(record)
        self.save_checkpoint(force=True)

    # ------------------------------------------------------------------
    # Item workflow
    # ------------------------------------------------------------------

    def _run_workflow(self, item: Element, identity: str) -> StepResult:
        selected = self._select(item, identity)
        if not isinstance(selected, Success):
            return selected

        action = self._locate_action()
        if action is None:
            return PermanentFailure(ErrorCode.ACTION_UNAVAILABLE, "No action control found")

        return self._invoke(action, identity)

    def _check_context(self) -> None:
        url = self.session.current_url() or ""
        marker = self.selectors.list_url_marker
        if marker and marker in self.source_url:
            in_list = marker in url
        else:
            in_list = urlparse(self.source_url).path in url
        if not in_list:
            raise ContextLost(f"Left the list view (now at {url})")

    def _click(self, element: Element, *, force: bool = False) -> None:
        element.scroll_into_view()
        self.humanizer.micro_pause()
        if force:
            element.click(force=True)
            return
        if self.humanizer.move_to(self.session, element):
            self.humanizer.press(self.session)
        else:
            element.click()

    def _select(self, item: Element, identity: str) -> StepResult:
        """Click the item until the detail view shows it.

        Odd attempts aim at the inner target, even attempts at the whole row;
        later attempts force the click.
        """

        for attempt in range(1, self.settings.select_max_attempts + 1):
            if attempt > 1:
                self._checkpoint_or_stop()
            self._check_context()

            target = item
            if attempt % 2 == 1:
                target = self.locator.resolve(Role.ITEM_TARGET, scope=item) or item
            force = attempt >= self.settings.force_click_from_attempt
            stale_label = self._current_detail_label()

            try:
                self._click(target, force=force)
            except (TransientObstruction, ContextLost, FatalRunError):
                raise
            except AutomationError as exc:
                _harvester_event("select", step="click_failed", attempt=attempt, identity=identity, error=str(exc))

            if self._await_detail(identity, stale_label=stale_label):
                if attempt > 1:
                    _harvester_event("select", step="verified", attempt=attempt, identity=identity)
                return Success()

            if self.locator.is_present(Role.OBSTRUCTION):
                raise TransientObstruction("Obstruction marker visible after selection")

        return PermanentFailure(ErrorCode.VERIFICATION_FAILED, "Selection could not be verified")

    def _read_detail_label(self, detail: Element, text: str) -> str:
        label = self.locator.resolve(Role.DETAIL_LABEL, scope=detail)
        if label is not None:
            try:
                return normalize_whitespace(label.read_text())
            except AutomationError as exc:
                _harvester_event("select", step="label_read_failed", error=str(exc))
        return first_line(text)

    def _current_detail_label(self) -> str:
        detail = self.locator.resolve(Role.DETAIL_VIEW)
        if detail is None:
            return ""
        try:
            return self._read_detail_label(detail, detail.read_text())
        except AutomationError:
            return ""

    def _await_detail(self, identity: str, *, stale_label: str = "") -> bool:
        """Wait until the detail view shows *identity*.

        A label still equal to *stale_label* (what the pane showed before the
        click) can only match exactly, never by token overlap.
        """

        detail = self.locator.wait_for(Role.DETAIL_VIEW, self.settings.detail_attach_timeout)
        if detail is None:
            return False
        if not identity:
            return True

        deadline = time.monotonic() + max(0.0, self.settings.detail_match_timeout)
        while True:
            try:
                text = detail.read_text()
            except AutomationError:
                text = ""
                detail = self.locator.resolve(Role.DETAIL_VIEW) or detail
            label = self._read_detail_label(detail, text)
            fuzzy = self.settings.fuzzy_match and not (
                stale_label and label.lower() == stale_label.lower()
            )
            if identity_matches(
                text,
                identity,
                label=label,
                threshold=self.settings.fuzzy_threshold,
                fuzzy=fuzzy,
            ):
                return True
            if time.monotonic() >= deadline:
                return False
            self._sleep(self.settings.poll_interval)

    def _locate_action(self) -> Optional[Element]:
        scope = self.locator.resolve(Role.DETAIL_VIEW)
        action = self.locator.wait_for(
            Role.ACTION_CONTROL, self.settings.action_timeout, scope=scope, interactive=False
        )
        if action is not None:
            return action
        return self.locator.resolve(Role.ACTION_CONTROL, scope=scope)

    def _activate(self, action: Element) -> None:
        action.scroll_into_view()
        self.humanizer.move_to(self.session, action)
        action.click()

    def _invoke(self, action: Element, identity: str) -> StepResult:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        if not disk_has_room(self.settings.min_free_mb, self.output_dir):
            raise FatalRunError(
                f"Less than {self.settings.min_free_mb} MB free under {self.output_dir}"
            )

        try:
            artifact = self.session.expect_artifact(
                lambda: self._activate(action), timeout=self.settings.artifact_timeout
            )
        except AutomationTimeout as exc:
            if self.locator.is_present(Role.OBSTRUCTION):
                raise TransientObstruction("Artifact delayed by a pending remote scan") from exc
            return RetryableFailure(
                ErrorCode.TIMEOUT,
                f"Artifact was not produced within {self.settings.artifact_timeout:g}s",
            )

        suggested = Path(artifact.suggested_filename or "")
        extension = suggested.suffix or config.ARTIFACT_DEFAULT_EXT
        path = build_artifact_path(
            self.output_dir,
            identity or suggested.stem,
            suffix=self.settings.artifact_suffix,
            extension=extension,
        )
        artifact.save_to(path)

        self.success_count += 1
        self.stats.succeeded += 1
        self._unsaved_successes += 1
        self.reporter.success(f"Artifact saved: {path.name}")
        self.reporter.progress(self.success_count, self.settings.max_items)
        if identity:
            # Keys must be in the set before the throttled save below runs.
            self.processed_keys.add(identity)
        self.save_checkpoint()
        return Success(artifact_path=path)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _wait_for_list(self) -> None:
        if self.locator.wait_for(Role.LIST_CONTAINER, self.settings.list_visible_timeout) is None:
            log_line("[RECOVERY][WARN] List container did not appear; continuing.")

    def _reload(self) -> None:
        try:
            self.session.reload(timeout=self.settings.nav_timeout)
        except AutomationError as exc:
            raise RecoveryFailed(f"Reload failed: {exc}") from exc
        self._wait_for_list()

    def _reload_recovery(self, index: int) -> None:
        self.reporter.warning("Obstruction detected; reloading the list view.")
        self._reload()
        self._list_recovery(index)

    def _context_recovery(self, index: int) -> None:
        self.reporter.warning("Left the list view; navigating back to the source list.")
        try:
            self.session.navigate(self.source_url, timeout=self.settings.nav_timeout)
        except AutomationError as exc:
            raise NavigationFailed(f"Could not return to the source list: {exc}") from exc
        self._wait_for_list()
        if self.navigator is not None and self.current_page > 1:
            self.navigator.seek(self.current_page)
        self._list_recovery(index)

    def _trigger_lazy_load(self) -> None:
        try:
            for selector in self.selectors.list_container:
                if self.session.query(selector) is not None:
                    self.session.scroll_to_bottom(selector)
                    break
            self.session.scroll_to_bottom(None)
        except AutomationError as exc:
            _harvester_event("lazy_load", step="scroll_failed", error=str(exc))

    def _rendered_count(self) -> int:
        return len(self.locator.resolve_all(Role.LIST_ITEM))

    def _try_lazy_load(self, current_count: int) -> bool:
        for _ in range(max(1, self.settings.lazy_load_polls)):
            self._trigger_lazy_load()
            self._sleep(self.settings.lazy_load_settle_seconds)
            if self._rendered_count() > current_count:
                _harvester_event("lazy_load", step="grew", before=current_count)
                return True
        return False

    def _list_recovery(self, target_index: int) -> None:
        """Scroll until the item at *target_index* is rendered again."""

        count = self._rendered_count()
        if count > target_index:
            return

        stagnant = 0
        for attempt in range(1, self.settings.recovery_max_scroll_attempts + 1):
            self._trigger_lazy_load()
            self._sleep(self.settings.lazy_load_settle_seconds)
            rendered = self._rendered_count()
            if rendered > target_index:
                _harvester_event("recovery", kind="list", target=target_index, attempts=attempt)
                return
            if rendered > count:
                count = rendered
                stagnant = 0
            else:
                stagnant += 1
            if stagnant >= self.settings.recovery_stagnation_limit:
                log_line(f"[RECOVERY] List stuck at {rendered} item(s); forcing a reload.")
                self._reload()
                count = self._rendered_count()
                stagnant = 0

        raise RecoveryFailed(
            f"Could not restore list position {target_index + 1} after "
            f"{self.settings.recovery_max_scroll_attempts} scroll attempts"
        )

    # ------------------------------------------------------------------
    # Pacing
    # ------------------------------------------------------------------

    def _pace(self, *, succeeded: bool) -> None:
        self.humanizer.random_wait(self.settings.min_wait_seconds, self.settings.max_wait_seconds)
        if self.rng.random() < self.settings.idle_probability:
            self.humanizer.idle(self.session)
        interval = self.settings.break_interval
        if succeeded and interval > 0 and self.success_count % interval == 0:
            self.reporter.info(f"Taking a break after {self.success_count} items.")
            self.humanizer.random_wait(
                self.settings.break_min_seconds, self.settings.break_max_seconds
            )


__all__ = ["ListProcessingEngine", "EngineSettings", "EngineStats", "PageOutcome"]
