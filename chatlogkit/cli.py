"""Command-line entry point: configuration, version and account commands."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
import time
from dataclasses import asdict
from datetime import timedelta
from typing import Any, Mapping

from .conf import (
    APP_NAME,
    ENV_CONFIG_DIR,
    ENV_PREFIX,
    ConfigStore,
    ProcessConfig,
    load_service_config,
    load_tui_config,
)

logger = logging.getLogger(__name__)

POSTGRES_URL_ENV = f"{ENV_PREFIX}_POSTGRES_URL"

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class _CommandError(Exception):
    """A command could not do its work."""


def _version() -> str:
    try:
        from . import __version__
    except ImportError:
        return "(devel)"
    return str(__version__)


def _parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``2m``, ``90s`` or ``1h30m``."""
    value = text.strip()
    if value in ("0", ""):
        return timedelta(0)
    sign = 1
    if value[0] in "+-":
        sign = -1 if value[0] == "-" else 1
        value = value[1:]
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value) or pos == 0:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    return timedelta(seconds=sign * seconds)


def decrypt_config(args: argparse.Namespace) -> dict[str, Any]:
    """Settings given on the command line of ``decrypt``."""
    conf: dict[str, Any] = {}
    if getattr(args, "data_dir", ""):
        conf["data_dir"] = args.data_dir
    if getattr(args, "data_key", ""):
        conf["data_key"] = args.data_key
    if getattr(args, "work_dir", ""):
        conf["work_dir"] = args.work_dir
    if getattr(args, "platform", ""):
        conf["platform"] = args.platform
    if getattr(args, "version", 0):
        conf["version"] = args.version
    return conf


def server_config(args: argparse.Namespace) -> dict[str, Any]:
    """Settings given on the command line of ``server``."""
    conf: dict[str, Any] = {}
    if getattr(args, "addr", ""):
        conf["http_addr"] = args.addr
    if getattr(args, "data_dir", ""):
        conf["data_dir"] = args.data_dir
    if getattr(args, "data_key", ""):
        conf["data_key"] = args.data_key
    if getattr(args, "img_key", ""):
        conf["img_key"] = args.img_key
    if getattr(args, "work_dir", ""):
        conf["work_dir"] = args.work_dir
    if getattr(args, "platform", ""):
        conf["platform"] = args.platform
    if getattr(args, "version", 0):
        conf["version"] = args.version
    if getattr(args, "auto_decrypt", False):
        conf["auto_decrypt"] = True
    return conf


def sync_config(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Settings given to ``sync``, with the Postgres URL falling back to the environment."""
    if environ is None:
        environ = os.environ
    conf: dict[str, Any] = {}
    if getattr(args, "postgres_url", ""):
        conf["postgres_url"] = args.postgres_url
    if getattr(args, "account", ""):
        conf["account"] = args.account
    if getattr(args, "work_dir", ""):
        conf["work_dir"] = args.work_dir
    if getattr(args, "platform", ""):
        conf["platform"] = args.platform
    if getattr(args, "version", 0):
        conf["version"] = args.version
    if getattr(args, "all", False):
        conf["sync_all"] = True
    if "postgres_url" not in conf:
        url = environ.get(POSTGRES_URL_ENV, "")
        if url:
            conf["postgres_url"] = url
    return conf


def save_postgres_url(url: str, config_dir: str = "") -> str:
    """Store ``postgres.url`` in ``chatlog.json`` and return the file's path."""
    store = ConfigStore(APP_NAME, config_dir, "", "", True)
    store.set("postgres.url", url)
    return store.file_path()


def _sync_accounts(cmd_conf: Mapping[str, Any], config_path: str = "") -> tuple[list[ProcessConfig], dict[str, dict[str, str]]]:
    """Accounts a sync covers and each account's supplier mappings."""
    tui_conf, _ = load_tui_config(config_path)

    postgres_url = cmd_conf.get("postgres_url") or ""
    if not postgres_url and tui_conf.postgres is not None:
        postgres_url = tui_conf.postgres.url
    if not postgres_url:
        raise _CommandError(
            "postgres URL is required (use --postgres-url, config postgres.url, or CHATLOG_POSTGRES_URL)"
        )

    work_dir = cmd_conf.get("work_dir") or ""
    if work_dir:
        accounts = [
            ProcessConfig(
                account=cmd_conf.get("account") or f"sync-{work_dir}",
                platform=cmd_conf.get("platform") or "darwin",
                version=cmd_conf.get("version") or 3,
                work_dir=work_dir,
            )
        ]
    else:
        history = tui_conf.parse_history()
        if not history:
            raise _CommandError("no accounts in history; add accounts via TUI or use --work-dir")
        wanted = cmd_conf.get("account") or ""
        if wanted:
            if wanted not in history:
                raise _CommandError(f"account {wanted!r} not found in history")
            accounts = [history[wanted]]
        else:
            accounts = [pc for pc in history.values() if pc.work_dir]

    mappings = {sm.account: sm.mappings for sm in tui_conf.supplier_mappings}
    return accounts, mappings


def _run_config_postgres(args: argparse.Namespace) -> int:
    url = args.url or args.positional_url or os.environ.get(POSTGRES_URL_ENV, "")
    if not url:
        print(
            "Postgres URL is required. Provide it as argument, --url flag, or CHATLOG_POSTGRES_URL env.",
            file=sys.stderr,
        )
        return 1
    path = save_postgres_url(url, os.environ.get(ENV_CONFIG_DIR, ""))
    print(f"Postgres URL saved to {path}")
    return 0


def _print_settings(conf: Any) -> None:
    print(json.dumps(asdict(conf), ensure_ascii=False, indent=2))


def _run_decrypt(args: argparse.Namespace) -> int:
    conf, _ = load_service_config("", decrypt_config(args))
    if not conf.data_dir:
        raise _CommandError("dataDir is required")
    if not conf.data_key:
        raise _CommandError("dataKey is required")
    _print_settings(conf)
    return 0


def _run_server(args: argparse.Namespace) -> int:
    cmd_conf = server_config(args)
    logger.info("server cmd config: %s", cmd_conf)
    conf, _ = load_service_config("", cmd_conf)
    if not conf.data_dir and not conf.work_dir:
        raise _CommandError("dataDir or workDir is required")
    if not conf.data_key:
        raise _CommandError("dataKey is required")
    conf.get_http_addr()
    _print_settings(conf)
    return 0


def _sync_once(cmd_conf: Mapping[str, Any]) -> None:
    accounts, mappings = _sync_accounts(cmd_conf)
    sync_all = bool(cmd_conf.get("sync_all"))
    for pc in accounts:
        if not pc.work_dir:
            logger.info("skip account %s: no work dir", pc.account)
            continue
        mapped = mappings.get(pc.account) or {}
        if not sync_all and not mapped:
            logger.warning("skip account %s: no supplier mappings configured", pc.account)
            continue
        scope = "all" if sync_all else f"{len(mapped)} mapped"
        print(f"{pc.account}\t{pc.work_dir}\t{pc.platform} v{pc.version}\t{scope}")


def _run_sync(args: argparse.Namespace) -> int:
    cmd_conf = sync_config(args)
    interval: timedelta = args.interval
    if interval.total_seconds() <= 0:
        _sync_once(cmd_conf)
        logger.info("sync completed")
        return 0

    logger.info("starting sync loop (interval: %s, all: %s)", interval, args.all)
    try:
        while True:
            try:
                _sync_once(cmd_conf)
            except (_CommandError, OSError, ValueError) as exc:
                logger.error("sync failed: %s", exc)
            time.sleep(interval.total_seconds())
    except KeyboardInterrupt:
        logger.info("sync loop stopped")
    return 0


def _run_version(args: argparse.Namespace) -> int:
    if args.module:
        print(f"chatlog {_version()}")
        print(f"python {sys.version.split()[0]}")
        print(f"platform {sys.platform}")
    else:
        print(f"chatlog {_version()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """The ``chatlog`` argument parser with all its subcommands."""
    parser = argparse.ArgumentParser(prog="chatlog", description="chatlog")
    parser.add_argument("--debug", action="store_true", default=False, help="debug")
    sub = parser.add_subparsers(dest="command")

    config = sub.add_parser("config", help="Manage chatlog configuration")
    config_sub = config.add_subparsers(dest="config_command")
    postgres = config_sub.add_parser("postgres", help="Set PostgreSQL connection URL for sync")
    postgres.add_argument("positional_url", nargs="?", default="", metavar="url")
    postgres.add_argument("-u", "--url", default="", help="PostgreSQL connection URL")
    postgres.set_defaults(handler=_run_config_postgres)

    decrypt = sub.add_parser("decrypt", help="decrypt")
    decrypt.add_argument("-p", "--platform", default="", help="platform")
    decrypt.add_argument("-v", "--version", type=int, default=0, help="version")
    decrypt.add_argument("-d", "--data-dir", default="", help="data dir")
    decrypt.add_argument("-k", "--data-key", default="", help="data key")
    decrypt.add_argument("-w", "--work-dir", default="", help="work dir")
    decrypt.set_defaults(handler=_run_decrypt)

    server = sub.add_parser("server", help="Start HTTP server")
    server.add_argument("--debug", action="store_true", default=argparse.SUPPRESS, help="debug")
    server.add_argument("-a", "--addr", default="", help="server address")
    server.add_argument("-p", "--platform", default="", help="platform")
    server.add_argument("-v", "--version", type=int, default=0, help="version")
    server.add_argument("-d", "--data-dir", default="", help="data dir")
    server.add_argument("-k", "--data-key", default="", help="data key")
    server.add_argument("-i", "--img-key", default="", help="img key")
    server.add_argument("-w", "--work-dir", default="", help="work dir")
    server.add_argument("--auto-decrypt", action="store_true", default=False, help="auto decrypt")
    server.set_defaults(handler=_run_server)

    sync = sub.add_parser("sync", help="Sync raw conversation data to PostgreSQL")
    sync.add_argument("--debug", action="store_true", default=argparse.SUPPRESS, help="debug")
    sync.add_argument("-u", "--postgres-url", default="", help="PostgreSQL connection URL")
    sync.add_argument("-a", "--account", default="", help="Sync only this account (default: all history accounts)")
    sync.add_argument("-w", "--work-dir", default="", help="Work dir (decrypted data path)")
    sync.add_argument("-p", "--platform", default="", help="Platform (darwin, windows)")
    sync.add_argument("-v", "--version", type=int, default=0, help="WeChat version (3 or 4)")
    sync.add_argument("--all", action="store_true", default=False,
                      help="Sync all messages (not just supplier-mapped conversations)")
    sync.add_argument("--interval", type=_parse_duration, default=timedelta(0),
                      help="Run sync repeatedly at this interval (e.g. 2m, 5m, 30m)")
    sync.set_defaults(handler=_run_sync)

    version = sub.add_parser("version", help="Show the version of chatlog")
    version.add_argument("-m", "--module", action="store_true", default=False,
                         help="module version information")
    version.set_defaults(handler=_run_version)

    return parser


def _init_logging(debug: bool) -> None:
    logging.basicConfig(stream=sys.stderr, format="%(asctime)s %(levelname)s %(message)s")
    logging.getLogger("chatlogkit").setLevel(logging.DEBUG if debug else logging.INFO)


def main(argv: list[str] | None = None) -> int:
    """Run the command line; return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _init_logging(bool(getattr(args, "debug", False)))

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 0
    try:
        return handler(args)
    except (_CommandError, OSError, ValueError) as exc:
        logger.error("command execution failed: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())