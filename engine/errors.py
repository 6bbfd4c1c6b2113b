"""Failure taxonomy for the export pipeline."""

from __future__ import annotations

KIND_PROVISIONING = "provisioning"
KIND_EXTRACTOR = "extractor"
KIND_SUBPROCESS = "subprocess"
KIND_PARSE = "parse"
KIND_TEMPFILE = "tempfile"
KIND_EXPORT = "export"
KIND_INTERNAL = "internal"


class ExportError(Exception):
    """Base class for failures raised below the orchestration boundary."""

    kind = KIND_INTERNAL


class ProvisioningError(ExportError):
    """The bundled extractor could not be extracted or is unavailable."""

    kind = KIND_PROVISIONING


class ExtractorLaunchError(ExportError):
    """The extractor process could not be started."""

    kind = KIND_EXTRACTOR


class ExtractorTimeoutError(ExportError):
    """The extractor did not exit within the configured timeout."""

    kind = KIND_EXTRACTOR


class ResultParseError(ExportError):
    """The extractor's JSON result could not be read or parsed."""

    kind = KIND_PARSE


class TempFileError(ExportError):
    """A temporary working copy could not be created or prepared."""

    kind = KIND_TEMPFILE
