"""Command line client configuration: local state file and the config command."""

from __future__ import annotations

import argparse
import json
import os
import sys
from enum import IntEnum
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Union

APP_NAME = "Tdex-Analytics CLI"
APP_USAGE = "Command line interface for Tdex-Analytics daemon"
VERSION = "0.0.1"
DEFAULT_RPCSERVER = "localhost:9000"

_DATA_DIR_NAME = "tdexa"
_STATE_FILE = "state.json"

PathLike = Union[str, "os.PathLike[str]"]


class TlsMode(IntEnum):
    """How the client secures its connection to the daemon."""

    NO_VERIFY = 0
    VERIFY_NO_CA = 1
    WITH_CERT_FILE = 2
    VERIFY_WITH_CA = 3
    INSECURE_NO_TLS = 4


class StateError(RuntimeError):
    """The local state file could not be read or written."""


def _home() -> Path:
    try:
        return Path.home()
    except RuntimeError:
        return Path(".")


def _app_data_dir() -> Path:
    capitalized = _DATA_DIR_NAME.capitalize()
    if sys.platform.startswith("win"):
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            return Path(base) / capitalized
    home = _home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / capitalized
    if sys.platform.startswith("plan9"):
        return home / _DATA_DIR_NAME
    return home / f".{_DATA_DIR_NAME}"


def default_state_path() -> Path:
    """Location of the client's state file in the per-user data directory."""
    return _app_data_dir() / _STATE_FILE


def _resolve(path: Optional[PathLike]) -> Path:
    return Path(path) if path is not None else default_state_path()


def get_state(path: Optional[PathLike] = None) -> Dict[str, str]:
    """Read the stored configuration; unreadable JSON yields an empty mapping."""
    target = _resolve(path)
    try:
        raw = target.read_bytes()
    except OSError:
        raise StateError("get config state error: try 'config init'") from None
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}
    return {key: value for key, value in data.items() if isinstance(value, str)}


def set_state(data: Mapping[str, str], path: Optional[PathLike] = None) -> None:
    """Merge the given entries into the stored configuration."""
    target = _resolve(path)
    try:
        target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError:
        pass
    target.touch(mode=0o644, exist_ok=True)
    merged = {**get_state(target), **data}
    encoded = json.dumps(merged, sort_keys=True, separators=(",", ":"))
    try:
        target.write_text(encoded, encoding="utf-8")
    except OSError as exc:
        raise StateError(f"writing to file: {exc}") from exc


_TLS_HELP = (
    "tls security modes: "
    "0 -> client does not authenticate the Server; "
    "1 -> server cert signed by 3rd party CA; "
    "2 -> server cert(pem file) is trusted no need to verify it; "
    "3 -> client uses Certification Authority (CA) cert file to verify server; "
    "4 -> server side without TLS, client uses unencrypted transport"
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tdexa", description=f"{APP_NAME}: {APP_USAGE}")
    parser.add_argument("--version", action="version", version=f"%(prog)s version {VERSION}")
    commands = parser.add_subparsers(dest="command")

    config = commands.add_parser("config", help="configures gate cli")
    config.add_argument("--rpcserver", default=DEFAULT_RPCSERVER, help="daemon address host:port")
    config.add_argument(
        "--tls_cert_path", default="", help="the path of the server TLS certificate file to use"
    )
    config.add_argument("--tls_mod", type=int, default=int(TlsMode.INSECURE_NO_TLS), help=_TLS_HELP)
    actions = config.add_subparsers(dest="action")
    set_parser = actions.add_parser("set", help="set individual <key> <value> in the local state")
    set_parser.add_argument("args", nargs="*")
    actions.add_parser("print", help="Print local configuration of the CLI")
    return parser


def _configure(args: argparse.Namespace) -> None:
    set_state({"rpcserver": args.rpcserver, "tls_mod": str(args.tls_mod)})


def _config_set(values: Sequence[str]) -> None:
    if len(values) < 2:
        raise ValueError("key and value are missing")
    key, value = values[0], values[1]
    set_state({key: value})
    print(f"{key} {value} has been set")


def _config_print() -> None:
    for key, value in get_state().items():
        print(f"{key}: {value}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line client; return the process exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        if args.command != "config":
            parser.print_help()
        elif args.action == "set":
            _config_set(args.args)
        elif args.action == "print":
            _config_print()
        else:
            _configure(args)
    except Exception as exc:
        print(f"[tower] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())