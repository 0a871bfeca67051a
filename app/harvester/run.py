"""Run orchestration for the list harvester.

Workflow:

- Validate runtime and job configuration, open the per-run log.
- Restore the checkpoint when resuming, otherwise start a fresh one.
- Open the authenticated browser session and navigate to the source list.
- Seek to the checkpointed (or requested) page.
- Let the engine work each page, advancing until the list is exhausted, the
  item limit is hit or a stop is requested.
- Always close the session and write the run report.

This is wired to ``POST /jobs`` and to ``python -m app.harvester.run``.
"""

from __future__ import annotations

import argparse
import random
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import config
from .config_validation import validate_job_config, validate_runtime_config
from .dom import PageSession, SessionProvider
from .engine import EngineSettings, ListProcessingEngine, PageOutcome
from .error_codes import AutomationError, FatalRunError, NavigationFailed
from .events import EventSink, ProgressReporter
from .humanize import HumanizedInputSynthesizer
from .job import JobConfig
from .locator import ElementLocator, Role
from .logging_utils import _harvester_event
from .pagination import PageNavigator
from .run_control import RunControl
from .selectors import DEFAULT_SELECTORS, ListSelectors
from .state import Checkpoint, CheckpointStore
from .telemetry import RunTelemetry
from .utils import ensure_dirs, log_line, sanitize_filename_component, setup_run_logger

_JOB_TITLE_PREFIX_RE = re.compile(r"^(İş unvanı|Job title)\s*", re.I)
_JOB_ID_RE = re.compile(r"/jobs/(\d+)/")


def _short_error_message(exc: Exception, max_length: int = 200) -> str:
    message = str(exc) or type(exc).__name__
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def _folder_timestamp() -> str:
    try:
        now = datetime.now(ZoneInfo(config.TIMEZONE))
    except ZoneInfoNotFoundError:
        now = datetime.now()
    return now.strftime("%Y-%m-%d_%H-%M")


def clean_item_label(raw: Optional[str]) -> str:
    """Strip the "Job title" caption and filesystem-hostile characters."""

    text = _JOB_TITLE_PREFIX_RE.sub("", (raw or "").strip())
    text = re.sub(r'[\\/:*?"<>|]', "", text)
    return re.sub(r"\s+", " ", text).strip()


def build_output_folder_name(item_label: str, source_url: str, timestamp: Optional[str] = None) -> str:
    """``<itemLabel>_<ts>``, or ``Job_<id>_<ts>`` when the label is unknown."""

    timestamp = timestamp or _folder_timestamp()
    label = sanitize_filename_component(item_label)
    if label:
        return f"{label}_{timestamp}"
    match = _JOB_ID_RE.search(source_url or "")
    job_id = match.group(1) if match else "Unknown"
    return f"Job_{job_id}_{timestamp}"


def _read_item_label(session: PageSession, selectors: ListSelectors) -> str:
    for selector in selectors.job_title:
        try:
            element = session.query(selector)
            if element is None:
                continue
            label = clean_item_label(element.read_text())
        except AutomationError as exc:
            log_line(f"[RUN][WARN] Could not read item label: {exc}")
            continue
        if label:
            return label
    return ""


class RunOrchestrator:
    """Drive one job from session setup to teardown."""

    def __init__(
        self,
        job: JobConfig,
        *,
        session_provider: SessionProvider,
        sink: Optional[EventSink] = None,
        control: Optional[RunControl] = None,
        store: Optional[CheckpointStore] = None,
        selectors: ListSelectors = DEFAULT_SELECTORS,
        settings: Optional[EngineSettings] = None,
        output_base_dir: Optional[Path] = None,
        runs_dir: Optional[Path] = None,
        reload_every_pages: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        entrypoint: str = "cli",
    ) -> None:
        self.job = job
        self.session_provider = session_provider
        self.reporter = ProgressReporter(sink)
        self.control = control or RunControl()
        self.store = store or CheckpointStore(config.CHECKPOINT_FILE)
        self.selectors = selectors
        self.settings = job.engine_settings(settings)
        self.output_base_dir = Path(output_base_dir or config.OUTPUT_BASE_DIR)
        self.runs_dir = runs_dir
        self.reload_every_pages = (
            config.RELOAD_EVERY_PAGES if reload_every_pages is None else reload_every_pages
        )
        self._sleep = sleep
        self.rng = rng or random.Random()
        self.entrypoint = entrypoint

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _restore_checkpoint(self) -> Optional[Checkpoint]:
        if not self.job.resume:
            return None
        checkpoint = self.store.load()
        if checkpoint is None or not checkpoint.output_location:
            self.reporter.warning("Resume requested but no valid checkpoint found. Starting fresh.")
            return None
        if checkpoint.source_list_url and checkpoint.source_list_url != self.job.source_list_url:
            self.reporter.warning(
                "Checkpoint belongs to a different list; resuming it anyway with the saved progress."
            )
        self.reporter.info("Resuming previous session...")
        _harvester_event(
            "state",
            source="checkpoint_file",
            processed=len(checkpoint.processed_item_keys),
            success_count=checkpoint.success_count,
            page=checkpoint.current_page,
        )
        return checkpoint

    def _start_fresh(self, session: PageSession) -> Path:
        self.reporter.info("Creating output folder...")
        item_label = _read_item_label(session, self.selectors)
        if item_label:
            self.reporter.info(f"Found item label: {item_label}")

        if self.job.output_dir:
            output_dir = Path(self.job.output_dir)
        else:
            output_dir = self.output_base_dir / build_output_folder_name(
                item_label, self.job.source_list_url
            )
        output_dir.mkdir(parents=True, exist_ok=True)

        # A fresh start replaces whatever an earlier job left behind.
        self.store.clear()
        self.store.save(
            processed_item_keys=[],
            success_count=0,
            failed_items=[],
            current_page=self.job.start_page,
            output_location=str(output_dir),
            source_list_url=self.job.source_list_url,
            item_label=item_label,
        )
        return output_dir

    def _open_list(self, session: PageSession, locator: ElementLocator) -> None:
        self.reporter.info(f"Navigating to source list: {self.job.source_list_url}")
        try:
            session.navigate(self.job.source_list_url, timeout=self.settings.nav_timeout)
        except AutomationError as exc:
            raise NavigationFailed(f"Could not open the source list: {exc}") from exc
        if locator.wait_for(Role.LIST_ITEM, self.settings.list_visible_timeout) is None:
            log_line("[RUN][WARN] List items not immediately visible, continuing anyway.")

    def _periodic_reload(self, session: PageSession, locator: ElementLocator, page_number: int) -> None:
        self.reporter.info(f"Periodic cleanup (page {page_number}); reloading to free memory...")
        try:
            session.reload(timeout=self.settings.nav_timeout)
            locator.wait_for(Role.LIST_CONTAINER, self.settings.list_visible_timeout)
        except AutomationError as exc:
            log_line(f"[RUN][WARN] Error during periodic reload: {exc}")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> Dict[str, Any]:
        ensure_dirs()
        validate_runtime_config(self.entrypoint)
        validate_job_config(self.job, entrypoint=self.entrypoint)
        log_path = setup_run_logger()

        telemetry = RunTelemetry(self.runs_dir)
        _harvester_event("run", step="start", run_id=telemetry.run_id, url=self.job.source_list_url)

        checkpoint = self._restore_checkpoint()
        engine: Optional[ListProcessingEngine] = None
        output_dir: Optional[Path] = Path(checkpoint.output_location) if checkpoint else None
        status = "completed"
        error: Optional[str] = None

        try:
            self.reporter.info("Launching browser...")
            session = self.session_provider.open(headless=self.job.headless)
            humanizer = HumanizedInputSynthesizer(rng=self.rng, sleep=self._sleep)
            locator = ElementLocator(
                session, self.selectors, sleep=self._sleep, poll_interval=self.settings.poll_interval
            )
            navigator = PageNavigator(
                session,
                locator,
                humanizer,
                self.reporter,
                sleep=self._sleep,
                poll_interval=self.settings.poll_interval,
            )

            self._open_list(session, locator)
            if output_dir is None:
                output_dir = self._start_fresh(session)
            output_dir.mkdir(parents=True, exist_ok=True)

            engine = ListProcessingEngine(
                session,
                output_dir=output_dir,
                source_url=self.job.source_list_url,
                store=self.store,
                settings=self.settings,
                selectors=self.selectors,
                locator=locator,
                humanizer=humanizer,
                reporter=self.reporter,
                control=self.control,
                navigator=navigator,
                sleep=self._sleep,
                rng=self.rng,
            )
            if checkpoint is not None:
                engine.hydrate(checkpoint)

            target_page = checkpoint.current_page if checkpoint else self.job.start_page
            page_number = navigator.seek(target_page) if target_page > 1 else navigator.get_active_page()
            engine.current_page = page_number

            self.reporter.info(f"Starting item processing (artifacts saved to: {output_dir})")
            status = self._process_pages(session, locator, navigator, engine, page_number)
        except FatalRunError as exc:
            status = "failed"
            error = _short_error_message(exc)
            self.reporter.error(f"Run aborted: {error}")
            _harvester_event("error", phase="run", error_code=exc.error_code, error=error)
            raise
        except Exception as exc:  # noqa: BLE001
            status = "failed"
            error = _short_error_message(exc)
            self.reporter.error(f"Run aborted by unexpected error: {error}")
            raise
        finally:
            try:
                self.session_provider.close()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[RUN][WARN] Error closing browser session: {exc}")

            success_count = engine.success_count if engine else (checkpoint.success_count if checkpoint else 0)
            failed_items = engine.failed_items if engine else (checkpoint.failed_items if checkpoint else [])
            report_path = telemetry.finalize(
                status=status,
                success_count=success_count,
                failed_items=failed_items,
                stats=engine.stats.as_dict() if engine else None,
                output_location=str(output_dir or ""),
                error=error,
            )
            self.reporter.stats(success_count, len(failed_items))
            _harvester_event(
                "run",
                step="end",
                run_id=telemetry.run_id,
                status=status,
                success=success_count,
                failed=len(failed_items),
            )

        summary = (
            f"Completed! Saved {success_count} artifact(s), {len(failed_items)} failed."
            if status != "stopped"
            else f"Stopped. Saved {success_count} artifact(s), {len(failed_items)} failed."
        )
        self.reporter.success(summary)

        return {
            "runId": telemetry.run_id,
            "status": status,
            "successCount": success_count,
            "failedCount": len(failed_items),
            "failedItems": [record.to_dict() for record in failed_items],
            "outputLocation": str(output_dir or ""),
            "reportPath": str(report_path),
            "logPath": str(log_path),
        }

    def _process_pages(
        self,
        session: PageSession,
        locator: ElementLocator,
        navigator: PageNavigator,
        engine: ListProcessingEngine,
        page_number: int,
    ) -> str:
        pages_advanced = 0
        while True:
            if self.control.stopped:
                return "stopped"

            self.reporter.info(f"Processing items on page {page_number}...")
            outcome = engine.process_page(page_number)
            if outcome is PageOutcome.STOPPED:
                return "stopped"
            if outcome is PageOutcome.LIMIT_REACHED:
                return "limit_reached"

            if not navigator.has_next():
                self.reporter.success("No more pages available. Job complete.")
                return "completed"

            self.reporter.info(f"Page {page_number} complete. Switching to next page...")
            if not navigator.advance():
                self.reporter.warning("Failed to switch to the next page; ending the run.")
                return "completed"

            page_number = navigator.get_active_page()
            pages_advanced += 1
            if self.reload_every_pages > 0 and pages_advanced % self.reload_every_pages == 0:
                self._periodic_reload(session, locator, page_number)
                page_number = navigator.get_active_page()

            engine.current_page = page_number
            engine.save_checkpoint(force=True)


def run_job(
    job: JobConfig,
    *,
    session_provider: SessionProvider,
    sink: Optional[EventSink] = None,
    control: Optional[RunControl] = None,
    store: Optional[CheckpointStore] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Public entrypoint: run *job* to completion and return its summary."""

    return RunOrchestrator(
        job,
        session_provider=session_provider,
        sink=sink,
        control=control,
        store=store,
        **kwargs,
    ).run()


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:
    from .playwright_adapter import PlaywrightSessionProvider

    parser = argparse.ArgumentParser(description="Harvest artifacts from a paginated list view")
    parser.add_argument("source_list_url", help="URL of the list view to walk")
    parser.add_argument("--max-items", type=int, default=config.MAX_ITEMS_DEFAULT)
    parser.add_argument("--min-wait", type=float, default=config.MIN_WAIT_SECONDS)
    parser.add_argument("--max-wait", type=float, default=config.MAX_WAIT_SECONDS)
    parser.add_argument("--break-interval", type=int, default=config.BREAK_INTERVAL)
    parser.add_argument("--break-min", type=float, default=config.BREAK_MIN_SECONDS)
    parser.add_argument("--break-max", type=float, default=config.BREAK_MAX_SECONDS)
    parser.add_argument("--start-page", type=int, default=1)
    parser.add_argument("--resume", action="store_true", help="Continue from the saved checkpoint")
    parser.add_argument("--output-dir", default=None)
    parser.add_argument("--headless", action="store_true", default=config.HEADLESS_DEFAULT)

    args = parser.parse_args(argv)

    job = JobConfig(
        source_list_url=args.source_list_url,
        max_items=args.max_items,
        min_wait_seconds=args.min_wait,
        max_wait_seconds=args.max_wait,
        break_interval=args.break_interval,
        break_min_seconds=args.break_min,
        break_max_seconds=args.break_max,
        start_page=args.start_page,
        resume=args.resume,
        output_dir=args.output_dir,
        headless=args.headless,
    )

    control = RunControl()
    try:
        result = run_job(job, session_provider=PlaywrightSessionProvider(), control=control)
    except KeyboardInterrupt:
        control.stop()
        raise
    log_line(f"[RUN] Finished: {result}")


__all__ = [
    "RunOrchestrator",
    "run_job",
    "build_output_folder_name",
    "clean_item_label",
    "_cli_entrypoint",
]


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()
