"""Command line interface for drive_uploader package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .cli_progress import (
    BatchUploadProgressDisplay,
    render_configuration_summary,
    render_outcomes,
    render_validation_result,
)
from .errors import ConfigurationError


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    from rich.logging import RichHandler

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _collect_files(paths: Sequence[Path]):
    from .models import LocalFile
    from .orchestrator.task import generate_file_id

    files = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.is_file():
            raise CLIError(f"not a file: {path}")
        files.append(LocalFile.from_path(path, file_id=generate_file_id()))
    return files


def _build_manager(store, permanent: bool, callbacks=None, max_parallel: Optional[int] = None, download_dir=None):
    from dataclasses import replace

    from .models import UploadConfig
    from .orchestrator import create_budget_upload_manager, create_regular_upload_manager

    config = UploadConfig.from_env()
    if max_parallel is not None:
        config = replace(config, max_parallel=max_parallel)
    if download_dir is not None:
        config = replace(config, download_dir=Path(download_dir))

    factory = create_regular_upload_manager if permanent else create_budget_upload_manager
    return factory(store, callbacks, config)


def _require_api_url() -> str:
    api_url = os.getenv("DRIVE_API_URL")
    if not api_url:
        raise CLIError("DRIVE_API_URL environment variable is not set")
    return api_url


async def _run_upload(args: argparse.Namespace) -> int:
    from .models import UploadOptions
    from .services.remote_store import HTTPRemoteStore

    api_url = _require_api_url()
    files = _collect_files(args.files)

    display = BatchUploadProgressDisplay()
    for file in files:
        display.track(file)

    options = UploadOptions(order_id=args.order_id, budget_category=args.budget_category)

    async with HTTPRemoteStore(api_url) as store:
        manager = _build_manager(store, args.permanent, display, max_parallel=args.max_parallel)

        check = manager.validate_budget_files(files, require_excel=args.require_excel)
        if not check.is_valid:
            render_validation_result(check)
            return 1

        display.start()
        try:
            outcomes = await manager.upload_files(args.context, files, options)
        except ConfigurationError as exc:
            raise CLIError(str(exc)) from exc
        finally:
            display.stop()

    render_outcomes(outcomes)
    return 0 if all(outcome.success for outcome in outcomes) else 1


async def _run_download(args: argparse.Namespace) -> int:
    from .errors import RemoteAccessError
    from .services.remote_store import HTTPRemoteStore

    api_url = _require_api_url()
    async with HTTPRemoteStore(api_url) as store:
        manager = _build_manager(store, args.permanent, download_dir=args.output_dir)
        try:
            path = await manager.download_file(args.item_id, args.name, is_staged=not args.permanent)
        except RemoteAccessError as exc:
            raise CLIError(exc.message) from exc

    print(f"Saved to {path}")
    return 0


async def _run_remove(args: argparse.Namespace) -> int:
    from .errors import RemoteAccessError
    from .services.remote_store import HTTPRemoteStore

    api_url = _require_api_url()
    async with HTTPRemoteStore(api_url) as store:
        manager = _build_manager(store, args.permanent)
        try:
            await manager.remove_file(args.item_id, args.name, is_staged=not args.permanent)
        except RemoteAccessError as exc:
            raise CLIError(exc.message) from exc

    print(f"Removed {args.name}")
    return 0


def _run_validate(args: argparse.Namespace) -> int:
    from .models import RetentionPolicy, UploadConfig
    from .validation import FileSetValidator

    files = _collect_files(args.files)
    policy = RetentionPolicy.permanent() if args.permanent else RetentionPolicy.staged()
    validator = FileSetValidator(
        policy=policy,
        max_file_size=UploadConfig.from_env().max_file_size,
    )
    result = validator.validate(files, require_category=args.require_excel)
    render_validation_result(result)
    return 0 if result.is_valid else 1


def _add_mode_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-p",
        "--permanent",
        action="store_true",
        help="Use the permanent (order) namespace instead of staged budget files",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drive-up",
        description="Upload, download and remove drive files for budgets and orders.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument("--version", action="version", version="drive-up (from drive_uploader)")

    commands = parser.add_subparsers(dest="command")

    upload = commands.add_parser("upload", help="Upload one or more files")
    upload.add_argument("files", nargs="+", type=Path, help="Files to upload")
    upload.add_argument("-c", "--context", default=None, help="Component/draft id the files belong to")
    upload.add_argument("-o", "--order-id", default=None, help="Order id (required with --permanent)")
    upload.add_argument("-j", "--max-parallel", type=int, default=None, help="Concurrent transfers")
    upload.add_argument("--budget-category", default=None, help="Budget category tag for the files")
    upload.add_argument("--require-excel", action="store_true", help="Refuse sets without a spreadsheet")
    _add_mode_flag(upload)

    download = commands.add_parser("download", help="Download a remote item")
    download.add_argument("item_id", help="Remote item id")
    download.add_argument("name", help="Local file name")
    download.add_argument("-d", "--output-dir", type=Path, default=None, help="Directory to save into")
    _add_mode_flag(download)

    remove = commands.add_parser("remove", help="Remove a remote item")
    remove.add_argument("item_id", help="Remote item id")
    remove.add_argument("name", help="File name (for messages)")
    _add_mode_flag(remove)

    validate = commands.add_parser("validate", help="Validate files without uploading")
    validate.add_argument("files", nargs="+", type=Path, help="Files to validate")
    validate.add_argument("--require-excel", action="store_true", help="Require at least one spreadsheet")
    _add_mode_flag(validate)

    return parser


_ASYNC_COMMANDS = {
    "upload": _run_upload,
    "download": _run_download,
    "remove": _run_remove,
}


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.command is None:
        parser.print_help()
        return 0

    summary = {
        "Command": args.command,
        "Mode": "permanent" if args.permanent else "staged",
        "Drive API": os.getenv("DRIVE_API_URL") or "(missing)",
        "Env File": str(used_env_file) if used_env_file else "-",
        "Logging": effective_log_mode,
    }
    if args.command == "upload":
        summary["Context"] = args.context or "-"
        summary["Order"] = args.order_id or "-"
    render_configuration_summary(summary)

    try:
        if args.command == "validate":
            return _run_validate(args)
        return asyncio.run(_ASYNC_COMMANDS[args.command](args))
    except (CLIError, ConfigurationError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
