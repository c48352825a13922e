from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..excel.reader import IngestError, SourceResolver, SourceRows, load_source
from ..logging.event_log import ExecutionLog
from ..mapping.overrides import apply_override, lookup_override
from ..mapping.photos import PhotoResolver
from ..mapping.profile_mapper import map_row_to_profile
from ..models.card_profile import CardProfile
from ..models.config_models import EngineConfig
from ..models.event_record import EventType, utc_now_iso
from ..models.execution_result import (
    ErrorCode,
    ExecutionError,
    ExecutionResult,
    RowDetail,
    RowOutcome,
)
from ..models.row_override import OverrideTable, RowOverride
from ..models.row_status import RowState
from ..soap.client import RetryPolicy, SuccessPolicy, VaultClient
from ..soap.envelope import EnvelopeBuilder, EnvelopeVariant, variant_payload
from .progress import (
    RUN_KIND_BATCH,
    RUN_KIND_ROW,
    LogReplayProgressStore,
    ProgressSnapshot,
    ProgressTracker,
)

"""Execution engine: rows -> Vault.

Drives RowIngester -> ProfileMapper -> OverrideApplier -> PhotoResolver ->
EnvelopeBuilder -> VaultClient for each row.

Entry points:
- execute_batch(): all rows (or an index allow-list), bounded worker pool
- execute_row(): one row by index, re-reading the source and the override
  at call time
- preview(): mapping + overrides + photo lookup only, no network, no counts
- check_photos(): existence-only photo check per row

Row-level errors never abort the batch; they are recorded in errors[] and
the row's detail. Only source-level problems (missing path, no rows,
unreadable file) are fatal, and even then a result is returned and the run
is closed in the log so pollers terminate.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "CancellationToken",
    "EngineError",
    "ExecutionEngine",
]


class EngineError(Exception):
    """Raised for misuse of the engine (e.g. no endpoint configured)."""


class CancellationToken:
    """Cooperative cancellation scoped to one batch run.

    Rows already in flight finish; rows not yet started stay idle and are
    not attempted.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class ExecutionEngine:
    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        client: VaultClient | None = None,
        resolver: SourceResolver | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.resolver = resolver or SourceResolver(self.config.ingest)
        self.builder = EnvelopeBuilder(self.config.soap)
        self._client = client
        self.progress_store = LogReplayProgressStore()

    @property
    def client(self) -> VaultClient:
        """VaultClient built lazily so preview never needs an endpoint."""
        if self._client is None:
            if not self.config.endpoint_url:
                raise EngineError("Vault endpoint URL is not configured (endpoint_url / VAULT_ENDPOINT_URL)")
            self._client = VaultClient(
                self.config.endpoint_url,
                timeout_seconds=self.config.execution.timeout_seconds,
                success_policy=SuccessPolicy.of(self.config.success_codes),
                retry_policy=RetryPolicy.from_config(self.config.retry),
            )
        return self._client

    # ------------------------------------------------------------------ helpers

    def _photos(self, rows: SourceRows, photo_dir: Path | None) -> PhotoResolver:
        return PhotoResolver(photo_dir or rows.photo_dir, self.config.photo_extensions)

    def _profile(self, raw: dict[str, str], override: RowOverride | None) -> CardProfile:
        """Mapped profile with the row override applied."""
        mapped = map_row_to_profile(raw, default_company=self.config.default_company)
        return apply_override(mapped, override)

    def _fatal_result(
        self,
        run_id: str,
        source: Path,
        err: IngestError,
        started_at: datetime,
        *,
        preview: bool = False,
    ) -> ExecutionResult:
        logger.error(f"{err.code}: {err.message}")
        return ExecutionResult(
            run_id=run_id,
            source=str(source),
            endpoint_url=self.config.endpoint_url,
            errors=[ExecutionError(code=err.code, message=err.message)],
            started_at=started_at,
            finished_at=datetime.now(UTC),
            preview=preview,
        )

    @staticmethod
    def _skipped_outcome(index: int, profile: CardProfile, started: float) -> RowOutcome:
        error = ExecutionError(
            code=ErrorCode.CARD_NO_MISSING.value,
            message="Card No is empty; row skipped",
            card_no="",
            index=index,
        )
        detail = RowDetail(
            index=index,
            card_no="",
            name=profile.name,
            staff_no=profile.staff_no,
            state=RowState.SKIPPED,
            resp_code=None,
            resp_message=error.message,
            duration_ms=_elapsed_ms(started),
        )
        return RowOutcome(detail=detail, error=error)

    def _attach_photo(
        self,
        log: ExecutionLog,
        run_id: str,
        index: int,
        profile: CardProfile,
        photos: PhotoResolver,
    ) -> tuple[CardProfile, bool]:
        match = photos.find(profile.card_no, profile.staff_no)
        log.event(
            run_id, EventType.PHOTO_CANDIDATES, index, profile.card_no,
            directory=str(photos.directory), candidates=match.candidates,
        )
        try:
            profile, match = photos.attach(profile)
        except OSError as e:
            logger.warning(f"row {index}: photo read failed ({e}); continuing without photo")
            log.event(run_id, EventType.PHOTO_ATTACH, index, profile.card_no, has_photo=False, error=str(e))
            return profile.with_photo(None), False
        log.event(
            run_id, EventType.PHOTO_ATTACH, index, profile.card_no,
            has_photo=match.found, file=match.path.name if match.path else None,
        )
        return profile, match.found

    def _execute_one(
        self,
        run_id: str,
        log: ExecutionLog,
        index: int,
        raw: dict[str, str],
        override: RowOverride | None,
        photos: PhotoResolver,
        variant: EnvelopeVariant,
    ) -> RowOutcome:
        """Run one row through the state machine: executing -> success|failed|skipped."""
        started = time.monotonic()
        profile = map_row_to_profile(raw, default_company=self.config.default_company)
        log.event(
            run_id, EventType.ROW_MAPPED, index, profile.card_no,
            name=profile.name, staff_no=profile.staff_no, started_at=utc_now_iso(),
        )
        if override is not None:
            profile = apply_override(profile, override)
            log.event(run_id, EventType.OVERRIDE_APPLIED, index, profile.card_no, override=override.to_dict())

        if not profile.has_card_no:
            outcome = self._skipped_outcome(index, profile, started)
            log.event(run_id, EventType.CARD_NO_MISSING, index, "", staff_no=profile.staff_no)
            log.event(
                run_id, EventType.ROW_COMPLETE, index, "",
                state=RowState.SKIPPED.value, code=ErrorCode.CARD_NO_MISSING.value,
                message=outcome.error.message if outcome.error else None,
                duration_ms=outcome.detail.duration_ms,
            )
            return outcome

        profile, has_photo = self._attach_photo(log, run_id, index, profile, photos)
        envelope = self.builder.build(profile, variant)
        log.event(
            run_id, EventType.REQUEST_SENT, index, profile.card_no,
            action=envelope.action, endpoint=self.client.endpoint_url, envelope=envelope.body,
        )
        resp = self.client.send(envelope)
        log.event(
            run_id, EventType.RESPONSE_RECEIVED, index, profile.card_no,
            http_status=resp.http_status, err_code=resp.err_code, err_message=resp.err_message,
            card_id=resp.card_id, attempts=resp.attempts, raw_snippet=resp.raw_snippet,
        )

        error: ExecutionError | None = None
        if not resp.success:
            error = ExecutionError(
                code=resp.error_code or ErrorCode.REQUEST_FAILED.value,
                message=resp.error_message or "Unknown error",
                card_no=profile.card_no,
                index=index,
            )
            log.event(run_id, EventType.ROW_ERROR, index, profile.card_no, code=error.code, message=error.message)

        state = RowState.SUCCESS if resp.success else RowState.FAILED
        code = resp.err_code if resp.err_code is not None else resp.error_code
        message = resp.err_message or resp.error_message or ("OK" if resp.success else None)
        detail = RowDetail(
            index=index,
            card_no=profile.card_no,
            name=profile.name,
            staff_no=profile.staff_no,
            has_photo=has_photo,
            state=state,
            resp_code=resp.err_code,
            resp_message=resp.err_message if resp.err_message is not None else resp.error_message,
            card_id=resp.card_id,
            duration_ms=_elapsed_ms(started),
        )
        log.event(
            run_id, EventType.ROW_COMPLETE, index, profile.card_no,
            state=state.value, code=code, message=message, duration_ms=detail.duration_ms,
        )
        return RowOutcome(detail=detail, error=error)

    def _crashed_outcome(
        self,
        log: ExecutionLog,
        run_id: str,
        index: int,
        raw: dict[str, str],
        override: RowOverride | None,
        exc: Exception,
    ) -> RowOutcome:
        """Outcome for a row whose worker raised unexpectedly."""
        profile = self._profile(raw, override)
        card_no = profile.card_no
        error = ExecutionError(code=ErrorCode.REQUEST_FAILED.value, message=str(exc), card_no=card_no, index=index)
        log.event(run_id, EventType.ROW_ERROR, index, card_no, code=error.code, message=error.message)
        log.event(
            run_id, EventType.ROW_COMPLETE, index, card_no,
            state=RowState.FAILED.value, code=error.code, message=error.message,
        )
        detail = RowDetail(
            index=index, card_no=card_no, name=profile.name, staff_no=profile.staff_no,
            state=RowState.FAILED, resp_message=error.message,
        )
        return RowOutcome(detail=detail, error=error)

    # ------------------------------------------------------------------ entry points

    def execute_batch(
        self,
        source: Path,
        *,
        overrides: OverrideTable | None = None,
        indices: Iterable[int] | None = None,
        concurrency: int | None = None,
        variant: EnvelopeVariant = EnvelopeVariant.CREATE,
        photo_dir: Path | None = None,
        cancel_token: CancellationToken | None = None,
        show_progress: bool = False,
    ) -> ExecutionResult:
        """Execute all rows (or the given indices) against Vault.

        Args:
            source: job output directory or explicit CSV/XLSX path
            overrides: per-row CardNo / DownloadCard corrections
            indices: optional allow-list of row indices
            concurrency: worker count (default from config, 6)
            variant: CREATE (AddCard) or UPDATE (UpdateCard)
            photo_dir: photo lookup directory (default: next to the data)
            cancel_token: stops rows that have not started yet
            show_progress: tqdm bar on a TTY

        Returns:
            ExecutionResult; a non-empty errors[] means "completed with errors"
        """
        run_id = _new_run_id()
        started_at = datetime.now(UTC)
        log = ExecutionLog(source)
        token = cancel_token or CancellationToken()
        workers = concurrency or self.config.execution.concurrency

        try:
            rows = load_source(source, self.resolver)
        except IngestError as e:
            log.event(run_id, EventType.BATCH_START, kind=RUN_KIND_BATCH, indices=[], variant=variant.value)
            log.event(run_id, EventType.BATCH_COMPLETE, fatal=True, code=e.code, message=e.message)
            return self._fatal_result(run_id, source, e, started_at)

        all_indices = range(len(rows.rows))
        errors: list[ExecutionError] = []
        if indices is None:
            selected = list(all_indices)
        else:
            selected = []
            for idx in dict.fromkeys(indices):
                if 0 <= idx < len(rows.rows):
                    selected.append(idx)
                else:
                    errors.append(ExecutionError(
                        code=ErrorCode.ROW_NOT_FOUND.value,
                        message=f"Row index {idx} out of range (0..{len(rows.rows) - 1})",
                        index=idx,
                    ))

        photos = self._photos(rows, photo_dir)
        client = self.client  # fail fast on missing endpoint before opening the run
        log.event(
            run_id, EventType.BATCH_START,
            kind=RUN_KIND_BATCH, indices=selected, variant=variant.value,
            data_file=rows.data_path.name, endpoint=client.endpoint_url, concurrency=workers,
        )
        logger.info(f"run {run_id}: {len(selected)}/{len(rows.rows)} rows from {rows.data_path.name} -> {client.endpoint_url}")

        def _work(idx: int) -> RowOutcome | None:
            if token.cancelled:
                return None
            return self._execute_one(
                run_id, log, idx, rows.rows[idx], lookup_override(overrides, idx), photos, variant,
            )

        outcomes: list[RowOutcome] = []
        tracker = ProgressTracker(len(selected)) if show_progress else None
        max_workers = max(1, min(workers, len(selected) or 1))
        try:
            with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
                future_to_index = {executor.submit(_work, idx): idx for idx in selected}
                for future in concurrent.futures.as_completed(future_to_index):
                    idx = future_to_index[future]
                    try:
                        outcome = future.result()
                    except Exception as exc:
                        logger.error(f"row {idx}: unexpected failure: {exc}")
                        outcome = self._crashed_outcome(
                            log, run_id, idx, rows.rows[idx], lookup_override(overrides, idx), exc,
                        )
                    if outcome is None:
                        continue
                    outcomes.append(outcome)
                    if tracker is not None:
                        tracker.finish_row(outcome.state)
                        tracker.set_postfix(ok=sum(o.state is RowState.SUCCESS for o in outcomes))
        finally:
            if tracker is not None:
                tracker.close()

        result = ExecutionResult.from_outcomes(
            outcomes,
            run_id=run_id,
            source=str(source),
            endpoint_url=client.endpoint_url,
            total_rows=len(rows.rows),
            started_at=started_at,
            finished_at=datetime.now(UTC),
            cancelled=token.cancelled,
        )
        if errors:
            result = _with_leading_errors(result, errors)
        log.event(
            run_id, EventType.BATCH_COMPLETE,
            attempted=result.attempted, registered=result.registered, failed=result.failed,
            skipped=result.skipped, error_count=len(result.errors), cancelled=result.cancelled,
        )
        logger.info(
            f"run {run_id}: registered {result.registered}/{result.attempted}, "
            f"skipped {result.skipped}, errors {len(result.errors)}"
        )
        return result

    def execute_row(
        self,
        source: Path,
        index: int,
        *,
        override: RowOverride | None = None,
        overrides: OverrideTable | None = None,
        variant: EnvelopeVariant = EnvelopeVariant.CREATE,
        photo_dir: Path | None = None,
    ) -> ExecutionResult:
        """Execute a single row by index.

        The source is re-read and the override re-resolved on every call, so
        repeated calls always use the latest data. An explicit override wins
        over the table entry for the same index.
        """
        run_id = _new_run_id()
        started_at = datetime.now(UTC)
        log = ExecutionLog(source)
        try:
            rows = load_source(source, self.resolver)
        except IngestError as e:
            log.event(run_id, EventType.BATCH_START, kind=RUN_KIND_ROW, indices=[index], variant=variant.value)
            log.event(run_id, EventType.BATCH_COMPLETE, fatal=True, code=e.code, message=e.message)
            return self._fatal_result(run_id, source, e, started_at)

        if not 0 <= index < len(rows.rows):
            err = ExecutionError(
                code=ErrorCode.ROW_NOT_FOUND.value,
                message=f"Row index {index} out of range (0..{len(rows.rows) - 1})",
                index=index,
            )
            logger.error(err.message)
            return ExecutionResult(
                run_id=run_id,
                source=str(source),
                endpoint_url=self.config.endpoint_url,
                total_rows=len(rows.rows),
                errors=[err],
                started_at=started_at,
                finished_at=datetime.now(UTC),
            )

        effective = override if override is not None else lookup_override(overrides, index)
        if effective is not None and effective.index != index:
            effective = RowOverride(index=index, card_no=effective.card_no, download_card=effective.download_card)
        photos = self._photos(rows, photo_dir)
        client = self.client
        log.event(
            run_id, EventType.BATCH_START,
            kind=RUN_KIND_ROW, indices=[index], variant=variant.value,
            data_file=rows.data_path.name, endpoint=client.endpoint_url,
        )
        try:
            outcome = self._execute_one(run_id, log, index, rows.rows[index], effective, photos, variant)
        except Exception as exc:
            logger.error(f"row {index}: unexpected failure: {exc}")
            outcome = self._crashed_outcome(log, run_id, index, rows.rows[index], effective, exc)
        result = ExecutionResult.from_outcomes(
            [outcome],
            run_id=run_id,
            source=str(source),
            endpoint_url=client.endpoint_url,
            total_rows=len(rows.rows),
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )
        log.event(
            run_id, EventType.BATCH_COMPLETE,
            attempted=result.attempted, registered=result.registered, failed=result.failed,
            skipped=result.skipped, error_count=len(result.errors),
        )
        return result

    def preview(
        self,
        source: Path,
        *,
        overrides: OverrideTable | None = None,
        variant: EnvelopeVariant = EnvelopeVariant.CREATE,
        photo_dir: Path | None = None,
    ) -> ExecutionResult:
        """Dry run: map, apply overrides and attach photos; nothing is sent.

        Each detail carries the raw source row and the elements a run with the
        same variant would send. Counts stay zero and the execution log is untouched.
        """
        run_id = _new_run_id()
        started_at = datetime.now(UTC)
        try:
            rows = load_source(source, self.resolver)
        except IngestError as e:
            return self._fatal_result(run_id, source, e, started_at, preview=True)

        photos = self._photos(rows, photo_dir)
        outcomes: list[RowOutcome] = []
        for idx, raw in enumerate(rows.rows):
            profile = self._profile(raw, lookup_override(overrides, idx))
            error: ExecutionError | None = None
            has_photo = False
            if profile.has_card_no:
                profile, match = photos.attach(profile)
                has_photo = match.found
            else:
                error = ExecutionError(
                    code=ErrorCode.CARD_NO_MISSING.value,
                    message="Card No is empty; row will be skipped",
                    card_no="",
                    index=idx,
                )
            detail = RowDetail(
                index=idx,
                card_no=profile.card_no,
                name=profile.name,
                staff_no=profile.staff_no,
                has_photo=has_photo,
                state=RowState.IDLE,
                row=dict(raw),
                profile=variant_payload(profile, variant),
            )
            outcomes.append(RowOutcome(detail=detail, error=error))
        logger.debug(f"preview {run_id}: {len(outcomes)} rows from {rows.data_path.name}")
        return ExecutionResult.from_outcomes(
            outcomes,
            run_id=run_id,
            source=str(source),
            endpoint_url=self.config.endpoint_url,
            total_rows=len(rows.rows),
            started_at=started_at,
            finished_at=datetime.now(UTC),
            preview=True,
        )

    def check_photos(
        self,
        source: Path,
        *,
        overrides: OverrideTable | None = None,
        photo_dir: Path | None = None,
    ) -> list[dict[str, Any]]:
        """Existence-only photo check for every row (after overrides)."""
        rows = load_source(source, self.resolver)
        photos = self._photos(rows, photo_dir)
        out: list[dict[str, Any]] = []
        for idx, raw in enumerate(rows.rows):
            profile = self._profile(raw, lookup_override(overrides, idx))
            out.append({
                "index": idx,
                "cardNo": profile.card_no,
                "staffNo": profile.staff_no,
                "hasPhoto": photos.has_photo(profile.card_no, profile.staff_no),
            })
        return out

    def progress(self, source: Path) -> ProgressSnapshot:
        return self.progress_store.snapshot(source)


def _with_leading_errors(result: ExecutionResult, errors: list[ExecutionError]) -> ExecutionResult:
    return replace(result, errors=[*errors, *result.errors])
