#!/usr/bin/env python3
"""
AcousticBrainz feature exporter.
- Runs the Essentia music extractor on each given file, one worker per file over a bounded pool.
- Correlates each file with a MusicBrainz recording id, embedding it into a temp copy when needed.
- Flattens the extractor JSON and appends one row per file to a shared TSV (default ~/out.tsv).
"""

import argparse
import logging
import os
import sys

from engine.core import build_export_config, load_config
from engine.orchestrator import ExportOrchestrator
from engine.paths import LOG_DIR, ensure_dir, resolve_config_path
from engine.tsv_export import get_tsv_appender
from media.provisioning import get_provisioner
from metadata.identifiers import IdentifierResolver
from metadata.providers.musicbrainz import MusicBrainzLookup
from metadata.tagging import MutagenMetadataAccessor

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(verbose=False):
    ensure_dir(LOG_DIR)
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        filename=os.path.join(LOG_DIR, "abzexport.log"),
        level=level,
        format=LOG_FORMAT,
    )
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    console.setLevel(level)
    logging.getLogger("").addHandler(console)
    logging.getLogger("musicbrainzngs").setLevel(logging.WARNING)


def build_parser():
    parser = argparse.ArgumentParser(description="Export AcousticBrainz features of audio files to a TSV file.")
    parser.add_argument("files", nargs="+", help="Audio files to analyze.")
    parser.add_argument("--config", help="JSON config file (relative paths resolve against the config dir).")
    parser.add_argument("--output", help="TSV file to append to (default: ~/out.tsv).")
    parser.add_argument("--workers", type=int, help="Number of files analyzed in parallel.")
    parser.add_argument("--timeout", type=float, help="Seconds before an extractor run is killed; 0 waits forever.")
    parser.add_argument("--no-lookup", action="store_true", help="Do not query MusicBrainz for missing MBIDs.")
    parser.add_argument("--verbose", action="store_true", help="Log debug output, including extractor output.")
    return parser


def _collect_config(args):
    config = {}
    if args.config:
        config_path = resolve_config_path(args.config)
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Config file not found: {config_path}")
        config = load_config(config_path)
        if not isinstance(config, dict):
            raise ValueError("config must be a JSON object")
    if args.output:
        config["output_path"] = args.output
    if args.workers is not None:
        config["max_workers"] = args.workers
    if args.timeout is not None:
        config["extractor_timeout_seconds"] = args.timeout
    if args.no_lookup:
        config["musicbrainz_lookup"] = False
    return build_export_config(config)


def _progress_logger(item):
    def _progress(fraction):
        logging.debug("%s: %.0f%%", item.display_name, fraction * 100)

    return _progress


def run(args):
    settings = _collect_config(args)
    accessor = MutagenMetadataAccessor()
    lookup = MusicBrainzLookup(min_score=settings.musicbrainz_min_score) if settings.musicbrainz_lookup else None
    provisioner = get_provisioner(settings.extractor_binary)
    orchestrator = ExportOrchestrator(
        resolver=IdentifierResolver(lookup),
        accessor=accessor,
        appender=get_tsv_appender(settings.output_path),
        provisioner=provisioner,
        extractor_timeout=settings.extractor_timeout_seconds,
    )
    items = [accessor.read_media_item(os.path.abspath(path)) for path in args.files]
    try:
        results = orchestrator.process_many(
            items,
            max_workers=settings.max_workers,
            progress_factory=_progress_logger,
        )
    finally:
        provisioner.teardown()

    completed = [result for result in results if result.ok]
    failed = [result for result in results if not result.ok]
    logging.info("Run complete. Exported: %d, failed: %d, output: %s", len(completed), len(failed), settings.output_path)
    for result in failed:
        logging.info("Failed: %s (%s)", result.item.display_name, result.failure_kind)
    return 0 if not failed else 1


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return run(args)
    except (OSError, ValueError) as exc:
        logging.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
