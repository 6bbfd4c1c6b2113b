"""Wrapper for running the Essentia music extractor on one input file."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass

from engine.errors import ExtractorLaunchError, ExtractorTimeoutError

logger = logging.getLogger(__name__)

EXIT_OK = 0


@dataclass(frozen=True)
class ExtractionOutcome:
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_OK


def run_extractor(binary_path, input_path, output_path, profile_path, *, timeout=None) -> ExtractionOutcome:
    """Run the extractor and wait for it to exit.

    The extractor is started from its own directory with stderr merged into
    stdout. The combined output is logged for diagnostics only; success is
    decided by the exit code alone.

    Raises:
        ExtractorLaunchError: If the binary is missing or cannot be executed.
        ExtractorTimeoutError: If ``timeout`` seconds pass before the process exits.
            The process is killed before this is raised.
    """
    command = [str(binary_path), str(input_path), str(output_path), str(profile_path)]
    working_dir = os.path.dirname(os.path.abspath(str(binary_path)))
    logger.debug("Running extractor: %s (cwd=%s)", command, working_dir)

    try:
        completed = subprocess.run(
            command,
            cwd=working_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout or None,
        )
    except subprocess.TimeoutExpired as exc:
        raise ExtractorTimeoutError(f"Extractor timed out after {timeout}s while analyzing {input_path}") from exc
    except OSError as exc:
        raise ExtractorLaunchError(f"Unable to start extractor {binary_path}: {exc}") from exc

    output = completed.stdout or ""
    logger.debug("Extractor output for %s: %s", input_path, output)
    if completed.returncode != EXIT_OK:
        logger.warning("Extractor exited with code %s for %s", completed.returncode, input_path)
    return ExtractionOutcome(exit_code=completed.returncode, output=output)
