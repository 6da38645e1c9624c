"""CLI command for exporting a backup to static HTML."""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from wxbackup.common import ConfigLoader, ConfigurationError, WXBackupError, setup_logging

from .config import WXBackupConfig
from .coordinator import Exporter, RunState
from .interfaces import ExportBackend
from .notifier import LoggingNotifier

# Application name derived from package name
_package = __package__ or "wxbackup.exporter"
APP_NAME = _package.split('.')[0]

# Seconds between checks for Ctrl-C while a run is active
_POLL_INTERVAL = 0.5


def parse_filter(values: Optional[Sequence[str]]) -> Dict[str, List[str]]:
    """Turn ``account:conv1,conv2`` arguments into a filter map.

    An account given without conversations exports none of its chats.
    """
    result: Dict[str, List[str]] = {}
    for value in values or []:
        account, _, sessions = value.partition(':')
        account = account.strip()
        if not account:
            raise ConfigurationError("Filter entry has no account id", value=value)
        entries = result.setdefault(account, [])
        entries.extend(s.strip() for s in sessions.split(',') if s.strip())
    return result


def load_backend(target: str) -> ExportBackend:
    """Import ``module:attr`` and return the ExportBackend it provides.

    ``attr`` may be an ExportBackend instance or a callable returning one.
    """
    module_name, _, attr = target.partition(':')
    if not module_name or not attr:
        raise ConfigurationError("Backend must be given as 'module:attr'", backend=target)
    try:
        module = importlib.import_module(module_name)
        provider = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load backend: {e}", backend=target) from e

    backend = provider if isinstance(provider, ExportBackend) else provider()
    if not isinstance(backend, ExportBackend):
        raise ConfigurationError("Backend factory did not return an ExportBackend", backend=target)
    return backend


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Collect command-line values that override configuration files."""
    export: Dict[str, Any] = {}
    for arg_name, key in (
        ("backup", "backup_dir"),
        ("output", "output_dir"),
        ("work_dir", "work_dir"),
        ("backend", "backend"),
        ("ext", "ext_name"),
        ("templates", "templates_name"),
    ):
        value = getattr(args, arg_name)
        if value is not None:
            export[key] = str(value)

    for flag in ("text_mode", "descending", "icons_in_session", "ignore_avatar", "ignore_emoji", "ignore_html_enc"):
        if getattr(args, flag):
            export[flag] = True

    if args.filter:
        export["filter"] = parse_filter(args.filter)

    return {"export": export} if export else {}


def preview_command(exporter: Exporter) -> int:
    """Print accounts and their conversations."""
    logger = logging.getLogger(__package__ or __name__)
    try:
        preview = exporter.load_preview()
    except WXBackupError as e:
        logger.error(f"Preview failed: {e.describe()}")
        return 1

    for account, conversations in preview:
        print(f"{account.display_name} ({account.user_name})")
        for conversation in conversations:
            print(f"    {conversation.display_name} ({conversation.user_name})")
    return 0


def export_command(exporter: Exporter) -> int:
    """Run an export in the background and wait, cancelling on Ctrl-C.

    Returns:
        Exit code (0 for a run that completed without a fatal error)
    """
    logger = logging.getLogger(__package__ or __name__)

    logger.info(f"Backup directory: {exporter.backup_dir}")
    logger.info(f"Output directory: {exporter.output_dir}")

    if not exporter.start():
        return 1

    try:
        while not exporter.wait_for_completion(timeout=_POLL_INTERVAL):
            pass
    except KeyboardInterrupt:
        logger.warning("Interrupted, cancelling export...")
        exporter.cancel()
        exporter.wait_for_completion()

    if exporter.failed:
        logger.error("Export aborted by a fatal error, see the log above")
        return 1
    return 0 if exporter.state == RunState.COMPLETED else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the export command."""
    parser = argparse.ArgumentParser(
        description="Export a messaging backup to browsable HTML"
    )
    parser.add_argument("--backup", type=Path, help="Backup root directory (overrides config)")
    parser.add_argument("--output", type=Path, help="Existing output directory (overrides config)")
    parser.add_argument("--work-dir", type=Path, help="Directory holding res/ (overrides config)")
    parser.add_argument("--backend", help="Backup reader factory as 'module:attr' (overrides config)")
    parser.add_argument("--text-mode", action="store_true", help="Inline every message, no lazy loading")
    parser.add_argument("--desc", dest="descending", action="store_true", help="Newest conversations first")
    parser.add_argument("--icons-in-session", action="store_true", help="Keep emoji assets under each chat")
    parser.add_argument("--ignore-avatar", action="store_true", help="Do not download avatars")
    parser.add_argument("--ignore-emoji", action="store_true", help="Do not create emoji folders")
    parser.add_argument("--ignore-html-enc", action="store_true", help="Do not escape links and labels")
    parser.add_argument("--ext", help="Extension of generated documents (default: html)")
    parser.add_argument("--templates", help="Template set under res/ (default: templates)")
    parser.add_argument(
        "--filter",
        action="append",
        metavar="ACCOUNT:CHAT1,CHAT2",
        help="Only export these chats of this account (repeatable)"
    )
    parser.add_argument("--preview", action="store_true", help="List accounts and chats, then exit")
    parser.add_argument("--config", type=Path, help="Path to config file (defaults.toml)")

    args = parser.parse_args(argv)

    try:
        loader = ConfigLoader(app_name=APP_NAME, config_class=WXBackupConfig)
        config = loader.load(defaults_path=args.config, overrides=build_overrides(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e.describe()}", file=sys.stderr)
        return 1

    setup_logging(
        level=config.logging.level,
        format=config.logging.format,
        log_file=Path(config.logging.file) if config.logging.file else None,
        max_file_size_mb=config.logging.max_file_size_mb,
        backup_count=config.logging.backup_count,
    )
    logger = logging.getLogger(__package__ or __name__)

    if not config.export.backend:
        logger.error("No backend configured; pass --backend module:attr")
        return 1

    try:
        backend = load_backend(config.export.backend)
    except ConfigurationError as e:
        logger.error(e.describe())
        return 1

    exporter = Exporter.from_config(config, backend, notifier=LoggingNotifier())
    if args.preview:
        return preview_command(exporter)
    return export_command(exporter)


if __name__ == "__main__":
    sys.exit(main())
