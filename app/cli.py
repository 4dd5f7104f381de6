"""CLI entrypoint for the conference-to-journal paper migration."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.config import DEFAULT_CONFIG_PATH, DEFAULT_SCHEMA_PATH, Config
from core.errors import ConfigurationError
from core.profiles import get_profile
from pipeline.exporter import Exporter
from pipeline.importer import Importer
from pipeline.replay import DEFAULT_ERROR_MARKERS, CommandFileInvoker, ReplayVerifier
from storage.database import SqlStore
from storage.destination import DestinationRepository
from storage.source import PaperFileStore, SourceRepository

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIGURATION = 2


def _ensure_utf8_console() -> None:
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, "reconfigure"):
            stream.reconfigure(encoding="utf-8", errors="replace")


def setup_logging(config: Config) -> None:
    cfg = config.logging
    level_name = str(cfg.get('level', 'INFO')).upper()
    fmt = cfg.get('console_format', '%(levelname)s: %(message)s')
    console_level_name = str(cfg.get('min_log_level_console', level_name)).upper()
    file_level_name = str(cfg.get('min_log_level_file', 'DEBUG')).upper()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, console_level_name, logging.INFO))
    console_handler.setFormatter(logging.Formatter(fmt))
    root_logger.addHandler(console_handler)

    output_dir = cfg.get('output_dir')
    if output_dir:
        log_dir = Path(output_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_fmt = cfg.get('file_format', '%(asctime)s - %(levelname)s - %(name)s - %(message)s')
        file_handler = logging.FileHandler(log_dir / 'migration.log', encoding='utf-8')
        file_handler.setLevel(getattr(logging, file_level_name, logging.DEBUG))
        file_handler.setFormatter(logging.Formatter(file_fmt))
        root_logger.addHandler(file_handler)

    logging.getLogger('sqlalchemy').setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Migrates published conference papers into journal import packages')
    parser.add_argument('--config', default=str(DEFAULT_CONFIG_PATH), help='Config path')
    parser.add_argument('--schema', default=str(DEFAULT_SCHEMA_PATH), help='Metadata schema path')
    parser.add_argument('--no-progress', action='store_true', help='Disable the progress bar')
    commands = parser.add_subparsers(dest='command', required=True)

    export = commands.add_parser('export', help='Export conferences into metadata.json and paper templates')
    export.add_argument('--output', '-o', required=True, help='Output directory')
    export.add_argument('--target', '-t', help='Destination version profile, e.g. stable-3_3_0')
    export.add_argument('--force', '-f', action='store_true', default=None,
                        help='Ignore the source version check and overwrite the output directory')
    export.add_argument('--files-dir', help='Source files directory')
    export.add_argument('--supplementary-as-galley', action='store_true', default=None,
                        help='Export supplementary files as galleys')
    export.add_argument('--no-default-section', dest='default_section', action='store_false', default=None,
                        help='Do not synthesize a section for conferences without tracks')
    export.add_argument('conferences', nargs='*', help='Conference paths to export (default: all)')

    imp = commands.add_parser('import', help='Import an export directory into the journal platform')
    imp.add_argument('--input', '-i', required=True, help='Directory produced by the export command')
    imp.add_argument('--ojs-path', '-o', help='Destination installation path')
    imp.add_argument('--username', '-u', help='User that owns the imported papers')
    imp.add_argument('--php', help='PHP executable')
    imp.add_argument('--force-level', '-f', type=int, choices=range(0, 6), help='Force level (0-5)')
    imp.add_argument('--command-file', '-e', help='Write the import commands to this file instead of running them')
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    if args.command == 'export':
        return {
            'source': {'files_dir': args.files_dir},
            'export': {
                'target': args.target,
                'force': args.force,
                'supplementary_as_galley': args.supplementary_as_galley,
                'default_section': args.default_section,
                'organizations': args.conferences or None,
            },
        }
    return {
        'destination': {'ojs_path': args.ojs_path, 'username': args.username, 'php_path': args.php},
        'import': {'force_level': args.force_level, 'command_file': args.command_file},
    }


def run_export(config: Config, args: argparse.Namespace) -> int:
    source_cfg = config.source
    export_cfg = config.export
    profile = get_profile(str(export_cfg.get('target', 'stable-3_3_0')))
    if not source_cfg.get('files_dir'):
        raise ConfigurationError("Missing the source files directory (source.files_dir or --files-dir)")

    store = SqlStore(config.resolve_database_url('source'), name='source')
    try:
        exporter = Exporter(
            SourceRepository(store),
            args.output,
            profile,
            file_store=PaperFileStore(source_cfg['files_dir'], source_cfg['file_path_template']),
            organizations=export_cfg.get('organizations') or [],
            force=bool(export_cfg.get('force')),
            supplementary_as_galley=bool(export_cfg.get('supplementary_as_galley')),
            default_section=bool(export_cfg.get('default_section', True)),
            expected_version=source_cfg.get('expected_version'),
            schema_path=args.schema,
            enable_progress=_progress_enabled(config, args),
        )
        stats = exporter.run()
    finally:
        store.close()
    logger.info("Exported papers: %d", stats.exported)
    logger.info("Failed papers: %d", stats.failed)
    return EXIT_FAILURES if stats.failed else EXIT_OK


def run_import(config: Config, args: argparse.Namespace) -> int:
    destination_cfg = config.destination
    import_cfg = config.importer
    command_file = import_cfg.get('command_file')

    store = SqlStore(config.resolve_database_url('destination'), name='destination')
    try:
        importer = Importer(
            DestinationRepository(store),
            args.input,
            destination_cfg.get('ojs_path'),
            destination_cfg.get('username'),
            php_path=destination_cfg.get('php_path') or 'php',
            force_level=int(import_cfg.get('force_level') or 0),
            invoker=CommandFileInvoker(command_file) if command_file else None,
            verifier=ReplayVerifier(import_cfg.get('error_markers') or DEFAULT_ERROR_MARKERS),
            schema_path=args.schema,
            enable_progress=_progress_enabled(config, args),
        )
        stats = importer.run()
    finally:
        store.close()
    if not stats.failed:
        logger.info(
            "Do not forget to:\n"
            "- Review the current issue of each imported journal\n"
            "- Review the issue ordering when importing into an existing journal"
        )
    return EXIT_FAILURES if stats.failed else EXIT_OK


def _progress_enabled(config: Config, args: argparse.Namespace) -> bool:
    return bool(config.logging.get('enable_progress_bar', True)) and not args.no_progress


def main(argv: Optional[List[str]] = None) -> int:
    _ensure_utf8_console()
    args = build_parser().parse_args(argv)
    try:
        config = Config(args.config, overrides=_overrides(args))
    except (FileNotFoundError, yaml.YAMLError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    setup_logging(config)

    handler = run_export if args.command == 'export' else run_import
    try:
        return handler(config, args)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIGURATION
    except Exception:
        logger.exception("%s failed with an unexpected error", args.command.capitalize())
        return EXIT_FAILURES


if __name__ == '__main__':
    sys.exit(main())
