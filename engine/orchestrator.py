"""Per-item AcousticBrainz feature export."""

from __future__ import annotations

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

from config.settings import MESSAGE_CATEGORY
from engine.errors import KIND_EXPORT, KIND_INTERNAL, KIND_SUBPROCESS, ExportError, TempFileError
from engine.flatten import build_record, extract_recorded_mbid, load_result
from engine.tsv_export import TsvAppender
from media.extractor import ExtractionOutcome, run_extractor
from media.preparation import MetadataAccessor, prepare_input
from media.provisioning import BinaryProvisioner
from metadata.identifiers import IdentifierResolver
from metadata.types import MediaItem

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

ProgressSink = Callable[[float], None]


class MessageSink(Protocol):
    def __call__(self, category: str, text: str, item_id: Any) -> None:
        """Show one user-visible notice about an item."""


def log_message(category: str, text: str, item_id: Any) -> None:
    logger.warning("[%s] %s (item=%s)", category, text, item_id)


@dataclass(frozen=True)
class ExportResult:
    status: str
    item: MediaItem
    mbid: str | None = None
    exit_code: int | None = None
    failure_kind: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_COMPLETED


class ExportOrchestrator:
    """Run the extractor for one item at a time and append its features to the TSV export.

    ``process`` never raises: every failure is logged, reported once through
    the message sink and returned as a failed :class:`ExportResult`. Temp
    files created for an item are removed before ``process`` returns.
    """

    def __init__(
        self,
        *,
        resolver: IdentifierResolver,
        accessor: MetadataAccessor,
        appender: TsvAppender,
        provisioner: BinaryProvisioner,
        message_sink: MessageSink = log_message,
        extractor_timeout: float | None = None,
        runner: Callable[..., ExtractionOutcome] = run_extractor,
    ) -> None:
        self.resolver = resolver
        self.accessor = accessor
        self.appender = appender
        self.provisioner = provisioner
        self.message_sink = message_sink
        self.extractor_timeout = extractor_timeout
        self._runner = runner

    def process(self, item: MediaItem, *, progress: ProgressSink | None = None) -> ExportResult:
        if not item.path or not os.path.isfile(item.path):
            text = f"Failed to export AcousticBrainz data for '{item.display_name}'. File not found."
            self._notify(text, item)
            _report(progress, 1.0)
            return ExportResult(STATUS_SKIPPED, item, message=text)

        files_to_delete: list[str] = []
        try:
            return self._process(item, progress, files_to_delete)
        except Exception as exc:
            kind = _failure_kind(exc)
            logger.exception("Export failed for %s (%s)", item.display_name, kind)
            text = f"Failed to export AcousticBrainz data for '{item.display_name}': {exc}"
            self._notify(text, item)
            return ExportResult(STATUS_FAILED, item, failure_kind=kind, message=text)
        finally:
            _delete_files(files_to_delete)
            _report(progress, 1.0)

    def _process(self, item: MediaItem, progress: ProgressSink | None, files_to_delete: list[str]) -> ExportResult:
        _report(progress, 0.25)
        resolved = self.resolver.resolve_primary(item)

        distinct = sorted({identifier.value for identifier in self.resolver.resolve_embedded(item)})
        if len(distinct) > 1:
            logger.warning("Track %s. Found multiple MBIDs: %s", item.display_name, distinct)
        elif resolved is not None:
            logger.debug("Track %s. Found MBID %s", item.display_name, resolved.value)

        prepared = prepare_input(item, resolved, self.accessor, generator=self.resolver.generator)
        files_to_delete.extend(prepared.temp_files)
        _report(progress, 0.4)

        provisioned = self.provisioner.ensure_provisioned()
        output_path = _create_result_file(provisioned.directory)
        files_to_delete.append(output_path)
        outcome = self._runner(
            provisioned.binary_path,
            prepared.input_path,
            output_path,
            provisioned.profile_path,
            timeout=self.extractor_timeout,
        )
        _report(progress, 0.5)

        mbid = resolved.value if resolved is not None else None
        if not outcome.ok:
            text = (
                f"Failed to export AcousticBrainz data for '{item.display_name}'. "
                f"Exit code {outcome.exit_code}. See log for details."
            )
            self._notify(text, item)
            return ExportResult(
                STATUS_FAILED,
                item,
                mbid=mbid,
                exit_code=outcome.exit_code,
                failure_kind=KIND_SUBPROCESS,
                message=text,
            )

        result = load_result(output_path)
        recorded = extract_recorded_mbid(result)
        if recorded and recorded != mbid:
            logger.info("Replaced originally found MBID %s with %s", mbid, recorded)
            mbid = recorded
        record = build_record(result)
        self.appender.append(item.name, item.artist, item.album, record)
        logger.info("Exported %d features for %s to %s", len(record), item.display_name, self.appender.path)
        return ExportResult(STATUS_COMPLETED, item, mbid=mbid, exit_code=outcome.exit_code)

    def _notify(self, text: str, item: MediaItem) -> None:
        try:
            self.message_sink(MESSAGE_CATEGORY, text, item.item_id)
        except Exception:
            logger.exception("Message sink failed for %s", item.display_name)

    def process_many(
        self,
        items: Iterable[MediaItem],
        *,
        max_workers: int = 1,
        progress_factory: Callable[[MediaItem], ProgressSink | None] | None = None,
    ) -> list[ExportResult]:
        """Process ``items`` on a bounded thread pool, returning results in input order."""
        items = list(items)
        if not items:
            return []

        def _run(item: MediaItem) -> ExportResult:
            progress = progress_factory(item) if progress_factory else None
            return self.process(item, progress=progress)

        with ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="abzexport") as pool:
            return list(pool.map(_run, items))


def _failure_kind(exc: Exception) -> str:
    if isinstance(exc, ExportError):
        return exc.kind
    if isinstance(exc, OSError):
        return KIND_EXPORT
    return KIND_INTERNAL


def _create_result_file(directory) -> str:
    try:
        fd, path = tempfile.mkstemp(prefix="acousticbrainz", suffix=".json", dir=str(directory))
        os.close(fd)
    except OSError as exc:
        raise TempFileError(f"Unable to create extractor result file in {directory}: {exc}") from exc
    return os.path.abspath(path)


def _report(progress: ProgressSink | None, fraction: float) -> None:
    if progress is None:
        return
    try:
        progress(fraction)
    except Exception:
        logger.exception("Progress sink failed at %.2f", fraction)


def _delete_files(paths: list[str]) -> None:
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.error("Failed to delete temp file %s", path, exc_info=True)
