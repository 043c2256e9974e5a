"""
Command-line interface for the resumable upload client.
"""
import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .api import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, UploadApiClient
from .exceptions import UploadError
from .models import ProgressSnapshot, UploadTarget
from .orchestrator import UploadOrchestrator
from .planner import DEFAULT_CHUNK_SIZE
from .retry import DEFAULT_MAX_ATTEMPTS
from .s3_backend import S3UploadBackend
from .scheduler import DEFAULT_CONCURRENCY
from .session_store import SessionStore

logger = logging.getLogger(__name__)

EXIT_FAILED = 1
EXIT_PAUSED = 3

DEFAULTS: Dict[str, Any] = {
    'base_url': DEFAULT_BASE_URL,
    'state_file': 'upload_state.json',
    'chunk_size_mb': DEFAULT_CHUNK_SIZE // (1024 * 1024),
    'concurrency': DEFAULT_CONCURRENCY,
    'max_attempts': DEFAULT_MAX_ATTEMPTS,
    'timeout': DEFAULT_TIMEOUT,
    's3_bucket': None,
    's3_key_prefix': 'videos/'
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: Whether to enable debug logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def load_config(config_file: Optional[Path] = None) -> dict:
    """Load configuration from a JSON file.

    Args:
        config_file: Path to config file

    Returns:
        Dictionary of configuration values
    """
    if not config_file:
        return {}

    try:
        with open(config_file) as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading config file: {e}")
        return {}


def resolve_settings(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge defaults, the config file and command-line flags, in that order."""
    settings = dict(DEFAULTS)
    settings.update(load_config(args.config))
    for key in DEFAULTS:
        value = getattr(args, key, None)
        if value is not None:
            settings[key] = value
    return settings


def create_backend(settings: Dict[str, Any]):
    """Build the collaborator: direct S3 when a bucket is configured, HTTP otherwise."""
    if settings.get('s3_bucket'):
        return S3UploadBackend(settings['s3_bucket'], key_prefix=settings['s3_key_prefix'])
    return UploadApiClient(settings['base_url'], timeout=float(settings['timeout']))


def create_orchestrator(settings: Dict[str, Any]) -> UploadOrchestrator:
    """Create and configure the upload orchestrator.

    Args:
        settings: Resolved configuration

    Returns:
        Configured UploadOrchestrator instance
    """
    return UploadOrchestrator(
        create_backend(settings),
        store=SessionStore(Path(settings['state_file'])),
        chunk_size=int(settings['chunk_size_mb']) * 1024 * 1024,
        concurrency=int(settings['concurrency']),
        max_attempts=int(settings['max_attempts']),
        on_progress=log_progress
    )


def log_progress(snapshot: ProgressSnapshot) -> None:
    logger.info(
        f"{snapshot.percent}% - {snapshot.uploaded_chunks}/{snapshot.total_chunks} parts, "
        f"{format_bytes(snapshot.speed_bytes_per_sec)}/s"
    )


def format_bytes(num_bytes: float) -> str:
    """Human-readable byte count, e.g. 1.5 MB."""
    units = ('B', 'KB', 'MB', 'GB')
    i = 0
    while num_bytes >= 1024 and i < len(units) - 1:
        num_bytes /= 1024
        i += 1
    return f"{round(num_bytes, 2)} {units[i]}"


def handle_upload(args: argparse.Namespace) -> int:
    """Handle the upload command.

    Args:
        args: Command line arguments

    Returns:
        Process exit code
    """
    settings = resolve_settings(args)
    target = UploadTarget.from_path(Path(args.file), content_type=args.content_type)
    orchestrator = create_orchestrator(settings)

    signal.signal(signal.SIGINT, lambda s, f: orchestrator.pause())

    try:
        outcome = orchestrator.start(target)
    except UploadError as e:
        logger.error(f"Upload failed: {e}")
        return EXIT_FAILED

    if outcome.paused:
        logger.info("Upload paused; run the same command again to resume")
        return EXIT_PAUSED
    if outcome.aborted:
        logger.info("Upload aborted")
        return EXIT_FAILED
    print(outcome.object_key)
    return 0


def handle_status(args: argparse.Namespace) -> int:
    """Handle the status command.

    Args:
        args: Command line arguments
    """
    settings = resolve_settings(args)
    record = SessionStore(Path(settings['state_file'])).snapshot()
    if not record:
        print("No upload in progress")
        return 0

    print(f"File: {record.get('fileName')} ({format_bytes(record.get('fileSize', 0))})")
    print(f"Key: {record.get('key')}")
    print(f"Upload ID: {record.get('uploadId')}")
    print(f"Parts uploaded: {len(record.get('parts', []))}")
    return 0


def handle_abort(args: argparse.Namespace) -> int:
    """Handle the abort command.

    Args:
        args: Command line arguments
    """
    settings = resolve_settings(args)
    orchestrator = create_orchestrator(settings)
    try:
        orchestrator.abort()
    except UploadError as e:
        logger.error(f"Abort failed: {e}")
        return EXIT_FAILED
    logger.info("Upload session aborted")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Resumable multipart upload client")
    parser.add_argument('-v', '--verbose', action='store_true',
                        help="Enable verbose logging")
    parser.add_argument('-c', '--config', type=Path,
                        help="Path to config file")
    parser.add_argument('--state-file', dest='state_file', type=str,
                        help="Path to the session state file")
    parser.add_argument('--base-url', dest='base_url', type=str,
                        help="Base URL of the upload service")
    parser.add_argument('--s3-bucket', dest='s3_bucket', type=str,
                        help="Upload straight to this S3 bucket instead of the service")

    subparsers = parser.add_subparsers(dest='command', required=True)

    upload_parser = subparsers.add_parser('upload',
                                          help="Start or resume uploading a file")
    upload_parser.add_argument('file', type=str,
                               help="File to upload")
    upload_parser.add_argument('--chunk-size-mb', dest='chunk_size_mb', type=int,
                               help="Part size in MiB")
    upload_parser.add_argument('--concurrency', type=int,
                               help="Parts uploaded at once")
    upload_parser.add_argument('--max-attempts', dest='max_attempts', type=int,
                               help="Attempts per part")
    upload_parser.add_argument('--content-type', dest='content_type', type=str,
                               help="MIME type of the file")

    subparsers.add_parser('status',
                          help="Show the persisted upload session")
    subparsers.add_parser('abort',
                          help="Abort the persisted upload session")
    return parser


def main(argv: Optional[list] = None) -> None:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    handlers = {
        'upload': handle_upload,
        'status': handle_status,
        'abort': handle_abort
    }
    try:
        sys.exit(handlers[args.command](args))
    except ValueError as e:
        logger.error(f"Error: {e}")
        sys.exit(EXIT_FAILED)


if __name__ == '__main__':
    main()
