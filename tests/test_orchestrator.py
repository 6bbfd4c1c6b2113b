from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from engine.errors import KIND_INTERNAL, KIND_PARSE, KIND_PROVISIONING, KIND_SUBPROCESS, ProvisioningError
from engine.orchestrator import STATUS_COMPLETED, STATUS_FAILED, STATUS_SKIPPED, ExportOrchestrator
from engine.tsv_export import TsvAppender
from media.extractor import ExtractionOutcome
from media.provisioning import ProvisionedBinary
from metadata.identifiers import IdentifierResolver
from metadata.types import MUSICBRAINZ_TRACK, ExternalIdentifier, MediaItem

_RESULT = {
    "metadata": {"tags": {"musicbrainz_trackid": ["mbid-embedded"]}},
    "rhythm": {"bpm": 128, "beats_position": [0.5, 1.0]},
    "tonal": {"key_key": "D", "chords_histogram": [1.5, 2]},
}


class FakeAccessor:
    def __init__(self) -> None:
        self.embedded: list[tuple[str, ExternalIdentifier]] = []
        self._identifiers: dict[str, list[ExternalIdentifier]] = {}

    def read_identifiers(self, path):
        return list(self._identifiers.get(path, []))

    def embed_identifier(self, path, identifier):
        self.embedded.append((path, identifier))
        self._identifiers.setdefault(path, []).append(identifier)


class FakeProvisioner:
    def __init__(self, directory: Path, *, error: Exception | None = None) -> None:
        self.directory = directory
        self.error = error
        self.calls = 0

    def ensure_provisioned(self):
        self.calls += 1
        if self.error:
            raise self.error
        return ProvisionedBinary(
            binary_path=self.directory / "streaming_extractor_music",
            profile_path=self.directory / "profile.yaml",
        )


class FakeRunner:
    def __init__(self, *, exit_code=0, payload=_RESULT, raw: str | None = None, error: Exception | None = None):
        self.exit_code = exit_code
        self.payload = payload
        self.raw = raw
        self.error = error
        self.calls: list[tuple] = []
        self.temp_files_seen: list[str] = []

    def __call__(self, binary_path, input_path, output_path, profile_path, *, timeout=None):
        self.calls.append((binary_path, input_path, output_path, profile_path, timeout))
        self.temp_files_seen.append(output_path)
        if self.error:
            raise self.error
        if self.exit_code == 0:
            with open(output_path, "w", encoding="utf-8") as handle:
                handle.write(self.raw if self.raw is not None else json.dumps(self.payload))
        return ExtractionOutcome(exit_code=self.exit_code, output="extractor log")


class _Lookup:
    def __init__(self, value: str | None) -> None:
        self.value = value

    def lookup(self, item):
        if self.value is None:
            return []
        return [MediaItem(path=None, identifiers=(ExternalIdentifier(MUSICBRAINZ_TRACK, self.value),))]


@pytest.fixture
def workspace(tmp_path: Path) -> dict:
    provision_dir = tmp_path / "provisioned"
    provision_dir.mkdir()
    audio = tmp_path / "song.mp3"
    audio.write_bytes(b"ID3 original")
    return {"provision_dir": provision_dir, "audio": audio, "output": tmp_path / "out.tsv"}


def _build(workspace, *, runner=None, lookup=None, provisioner=None, accessor=None, messages=None, timeout=None):
    messages = messages if messages is not None else []
    return ExportOrchestrator(
        resolver=IdentifierResolver(lookup),
        accessor=accessor or FakeAccessor(),
        appender=TsvAppender(workspace["output"]),
        provisioner=provisioner or FakeProvisioner(workspace["provision_dir"]),
        message_sink=lambda category, text, item_id: messages.append((category, text, item_id)),
        extractor_timeout=timeout,
        runner=runner or FakeRunner(),
    )


def _item(workspace, **kwargs) -> MediaItem:
    defaults = {"path": str(workspace["audio"]), "name": "Song", "artist": "Artist", "album": "Album", "item_id": 42}
    defaults.update(kwargs)
    return MediaItem(**defaults)


def _lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines() if path.exists() else []


def test_successful_run_appends_one_row_and_cleans_up(workspace) -> None:
    runner = FakeRunner()
    messages: list = []
    progress: list[float] = []
    orchestrator = _build(workspace, runner=runner, messages=messages, timeout=30)

    result = orchestrator.process(_item(workspace), progress=progress.append)

    assert result.status == STATUS_COMPLETED
    assert result.ok
    assert result.exit_code == 0
    assert messages == []
    assert progress == [0.25, 0.4, 0.5, 1.0]
    assert _lines(workspace["output"]) == [
        "Name\tArtist\tAlbum\trhythm:bpm\ttonal:chords_histogram[0]\ttonal:chords_histogram[1]\ttonal:key_key",
        "Song\tArtist\tAlbum\t128\t1.5\t2\tD",
    ]
    binary_path, input_path, output_path, profile_path, timeout = runner.calls[0]
    assert input_path == str(workspace["audio"])
    assert Path(output_path).parent == workspace["provision_dir"]
    assert output_path.endswith(".json")
    assert profile_path == workspace["provision_dir"] / "profile.yaml"
    assert timeout == 30
    assert not os.path.exists(output_path)
    assert workspace["audio"].read_bytes() == b"ID3 original"


def test_non_zero_exit_appends_nothing_and_reports_exit_code(workspace) -> None:
    runner = FakeRunner(exit_code=2)
    messages: list = []
    orchestrator = _build(workspace, runner=runner, messages=messages)

    result = orchestrator.process(_item(workspace))

    assert result.status == STATUS_FAILED
    assert result.failure_kind == KIND_SUBPROCESS
    assert result.exit_code == 2
    assert not workspace["output"].exists()
    assert len(messages) == 1
    category, text, item_id = messages[0]
    assert category == "Analysis"
    assert "'Song'" in text
    assert "Exit code 2" in text
    assert item_id == 42
    assert not any(os.path.exists(path) for path in runner.temp_files_seen)


def test_looked_up_identifier_is_embedded_into_a_deleted_copy(workspace) -> None:
    runner = FakeRunner(payload={"rhythm": {"bpm": 100}})
    accessor = FakeAccessor()
    orchestrator = _build(workspace, runner=runner, accessor=accessor, lookup=_Lookup("mbid-remote"))

    result = orchestrator.process(_item(workspace))

    assert result.status == STATUS_COMPLETED
    assert result.mbid == "mbid-remote"
    input_path = runner.calls[0][1]
    assert input_path != str(workspace["audio"])
    assert input_path.endswith(".mp3")
    assert accessor.embedded == [(input_path, ExternalIdentifier(MUSICBRAINZ_TRACK, "mbid-remote"))]
    assert not os.path.exists(input_path)
    assert workspace["audio"].read_bytes() == b"ID3 original"


def test_mbid_recorded_by_extractor_replaces_resolved_one(workspace) -> None:
    orchestrator = _build(workspace, lookup=_Lookup("mbid-remote"))

    result = orchestrator.process(_item(workspace))

    assert result.mbid == "mbid-embedded"


def test_unexpected_error_is_reported_once_and_cleans_up(workspace) -> None:
    runner = FakeRunner(error=RuntimeError("boom"))
    messages: list = []
    progress: list[float] = []
    orchestrator = _build(workspace, runner=runner, messages=messages, lookup=_Lookup("mbid-remote"))

    result = orchestrator.process(_item(workspace), progress=progress.append)

    assert result.status == STATUS_FAILED
    assert result.failure_kind == KIND_INTERNAL
    assert len(messages) == 1
    assert "boom" in messages[0][1]
    assert progress[-1] == 1.0
    copy_path, output_path = runner.calls[0][1], runner.calls[0][2]
    assert not os.path.exists(copy_path)
    assert not os.path.exists(output_path)
    assert not workspace["output"].exists()


def test_malformed_result_produces_no_row(workspace) -> None:
    runner = FakeRunner(raw="{truncated")
    messages: list = []
    orchestrator = _build(workspace, runner=runner, messages=messages)

    result = orchestrator.process(_item(workspace))

    assert result.status == STATUS_FAILED
    assert result.failure_kind == KIND_PARSE
    assert len(messages) == 1
    assert not workspace["output"].exists()
    assert not os.path.exists(runner.temp_files_seen[0])


def test_provisioning_failure_fails_the_item(workspace) -> None:
    runner = FakeRunner()
    messages: list = []
    provisioner = FakeProvisioner(workspace["provision_dir"], error=ProvisioningError("Extractor unavailable"))
    orchestrator = _build(workspace, runner=runner, provisioner=provisioner, messages=messages)

    first = orchestrator.process(_item(workspace))
    second = orchestrator.process(_item(workspace))

    assert first.failure_kind == second.failure_kind == KIND_PROVISIONING
    assert runner.calls == []
    assert len(messages) == 2


def test_missing_file_is_skipped_with_one_message(workspace) -> None:
    runner = FakeRunner()
    messages: list = []
    progress: list[float] = []
    orchestrator = _build(workspace, runner=runner, messages=messages)

    result = orchestrator.process(_item(workspace, path=str(workspace["audio"]) + ".gone"), progress=progress.append)

    assert result.status == STATUS_SKIPPED
    assert runner.calls == []
    assert progress == [1.0]
    assert messages == [("Analysis", "Failed to export AcousticBrainz data for 'Song'. File not found.", 42)]


def test_message_sink_errors_do_not_escape(workspace) -> None:
    def _broken_sink(category, text, item_id):
        raise RuntimeError("ui gone")

    orchestrator = ExportOrchestrator(
        resolver=IdentifierResolver(),
        accessor=FakeAccessor(),
        appender=TsvAppender(workspace["output"]),
        provisioner=FakeProvisioner(workspace["provision_dir"]),
        message_sink=_broken_sink,
        runner=FakeRunner(exit_code=1),
    )

    result = orchestrator.process(_item(workspace))

    assert result.failure_kind == KIND_SUBPROCESS


def test_process_many_writes_one_header_and_one_row_per_item(workspace, tmp_path: Path) -> None:
    items = []
    for index in range(12):
        audio = tmp_path / f"track{index}.mp3"
        audio.write_bytes(b"audio")
        items.append(MediaItem(path=str(audio), name=f"Track {index}", artist="Artist", album="Album"))
    runner = FakeRunner()
    orchestrator = _build(workspace, runner=runner)

    results = orchestrator.process_many(items, max_workers=4)

    assert [result.item for result in results] == items
    assert all(result.ok for result in results)
    lines = _lines(workspace["output"])
    assert len(lines) == 13
    assert sum(1 for line in lines if line.startswith("Name\t")) == 1
    assert sorted(line.split("\t")[0] for line in lines[1:]) == sorted(item.name for item in items)
    assert not any(os.path.exists(path) for path in runner.temp_files_seen)
    assert list(workspace["provision_dir"].iterdir()) == []
