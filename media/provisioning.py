"""Extraction of the bundled feature extractor into a private working directory."""

from __future__ import annotations

import atexit
import logging
import os
import shutil
import stat
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

from config.settings import ESSENTIA_BUILD_SHA, PROFILE_YAML, STREAMING_EXTRACTOR_MUSIC
from engine.errors import ProvisioningError
from engine.paths import default_binary_path

logger = logging.getLogger(__name__)

_EXECUTABLE_MODE = (
    stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR
    | stat.S_IRGRP | stat.S_IXGRP
    | stat.S_IROTH | stat.S_IXOTH
)


def render_profile(build_sha: str = ESSENTIA_BUILD_SHA) -> str:
    """Return the extractor profile used for AcousticBrainz-compatible output."""
    return (
        "requireMbid: false\n"
        "indent: 0\n"
        "mergeValues:\n"
        "    metadata:\n"
        "        version:\n"
        f"            essentia_build_sha: {build_sha}\n"
    )


@dataclass(frozen=True)
class ProvisionedBinary:
    binary_path: Path
    profile_path: Path

    @property
    def directory(self) -> Path:
        return self.binary_path.parent


class BinaryProvisioner:
    """Copies the bundled extractor and its profile into a temp dir once per process.

    The first caller performs the extraction while holding the lock; concurrent
    callers block and then reuse its result. A failed extraction is recorded and
    every later call raises :class:`ProvisioningError` without retrying.
    """

    def __init__(self, source_binary: str | os.PathLike | None = None, *, register_teardown=atexit.register) -> None:
        self.source_binary = Path(source_binary) if source_binary else default_binary_path()
        self._register_teardown = register_teardown
        self._lock = threading.Lock()
        self._provisioned: ProvisionedBinary | None = None
        self._failure: str | None = None
        self._directory: Path | None = None
        self._teardown_registered = False

    @property
    def provisioned(self) -> ProvisionedBinary | None:
        return self._provisioned

    def ensure_provisioned(self) -> ProvisionedBinary:
        if self._provisioned is not None:
            return self._provisioned
        with self._lock:
            if self._provisioned is not None:
                return self._provisioned
            if self._failure is not None:
                raise ProvisioningError(f"Extractor unavailable: {self._failure}")
            try:
                self._provisioned = self._extract()
            except Exception as exc:
                self._failure = str(exc) or exc.__class__.__name__
                logger.error("Sorry, couldn't extract the extractor binary: %s", exc, exc_info=True)
                raise ProvisioningError(f"Extractor unavailable: {self._failure}") from exc
            logger.info("Extractor binary is %s", self._provisioned.binary_path)
            return self._provisioned

    def _extract(self) -> ProvisionedBinary:
        logger.debug("Extracting AcousticBrainz extractor from %s", self.source_binary)
        if not self.source_binary.is_file():
            raise FileNotFoundError(f"Bundled extractor not found: {self.source_binary}")
        directory = Path(tempfile.mkdtemp(prefix="abzexport")).resolve()
        self._directory = directory
        self._ensure_teardown_registered()
        logger.debug("Extractor directory: %s", directory)

        executable = directory / STREAMING_EXTRACTOR_MUSIC
        shutil.copyfile(self.source_binary, executable)
        try:
            os.chmod(executable, _EXECUTABLE_MODE)
        except (NotImplementedError, OSError):
            logger.warning("Was not able to make %s executable. Operation not supported on this platform.", executable)

        profile = directory / PROFILE_YAML
        profile.write_text(render_profile(), encoding="utf-8")
        return ProvisionedBinary(binary_path=executable, profile_path=profile)

    def _ensure_teardown_registered(self) -> None:
        if self._teardown_registered:
            return
        self._register_teardown(self.teardown)
        self._teardown_registered = True

    def teardown(self) -> None:
        """Delete the provisioning directory. Safe to call more than once."""
        with self._lock:
            directory = self._directory
            self._directory = None
            self._provisioned = None
            if self._failure is None:
                self._failure = "provisioning directory was torn down"
        if directory is None:
            return
        logger.debug("Deleting temporary AcousticBrainz binaries from %s", directory)
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            pass
        except OSError:
            logger.error("Failure while deleting temporary AcousticBrainz binaries %s", directory, exc_info=True)


_PROVISIONER = None
_PROVISIONER_LOCK = threading.Lock()


def get_provisioner(source_binary=None):
    """Return the process-wide provisioner, creating it on first use."""
    global _PROVISIONER
    if _PROVISIONER is not None:
        return _PROVISIONER
    with _PROVISIONER_LOCK:
        if _PROVISIONER is None:
            _PROVISIONER = BinaryProvisioner(source_binary)
    return _PROVISIONER
