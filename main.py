# SPDX-License-Identifier: Apache-2.0
#
# Copyright (c) 2024-2025 PrefSync Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
PrefSync - Calendar preference and view state synchronization

Command-line entry point operating on a user's cached calendar preferences.
"""

import argparse
import asyncio
import json
import sys
import traceback
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QCoreApplication

from config.__version__ import get_display_version
from config.app_config import ConfigManager
from config.constants import ANONYMOUS_USER_ID
from core.preferences import (
    InvalidFormatError,
    LocalCacheBackend,
    PreferenceStore,
    RemotePreferenceBackend,
    RemoteSession,
)
from core.preferences.codec import write_bundle
from core.view_state import InMemoryLocationHistory, ViewStateSynchronizer
from data.storage.key_value import FileKeyValueStore
from utils.http_client import AsyncRetryableHttpClient
from utils.logger import setup_logging

# Global logger for exception hook
_logger = None


def exception_hook(exctype, value, tb):
    """
    Global exception handler for uncaught exceptions.

    Args:
        exctype: Exception type
        value: Exception value
        tb: Traceback object
    """
    if _logger:
        _logger.critical(
            f"Uncaught exception: {exctype.__name__}: {value}",
            exc_info=(exctype, value, tb),
        )
    else:
        print("".join(traceback.format_exception(exctype, value, tb)), file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prefsync",
        description="Inspect and edit cached calendar preferences.",
    )
    parser.add_argument("--version", action="version", version=get_display_version())
    parser.add_argument(
        "--user",
        default=None,
        help=f"User identity (default: {ANONYMOUS_USER_ID})",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Access token enabling remote sync for this invocation",
    )
    parser.add_argument("--log-level", default=None, help="Log level (DEBUG, INFO, ...)")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("show", help="Print the whole preference tree")

    get_cmd = commands.add_parser("get", help="Print one preference")
    get_cmd.add_argument("path", help="Dot path, e.g. workingHours.start")

    set_cmd = commands.add_parser("set", help="Set one preference")
    set_cmd.add_argument("path", help="Dot path, e.g. workingHours.start")
    set_cmd.add_argument("value", help="JSON value; bare words are stored as strings")

    commands.add_parser("reset", help="Restore the default preferences")

    export_cmd = commands.add_parser("export", help="Write the preferences to a file")
    export_cmd.add_argument("--dir", default=None, help="Target directory")

    import_cmd = commands.add_parser("import", help="Replace preferences from a file")
    import_cmd.add_argument("file", help="Previously exported preferences file")

    view_cmd = commands.add_parser("view", help="Resolve the calendar view for a location")
    view_cmd.add_argument("url", nargs="?", default="/calendar", help="Calendar location")

    return parser


def _parse_value(raw: str):
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _print_json(value) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def _create_store(config: ConfigManager, token: Optional[str]) -> PreferenceStore:
    local_backend = LocalCacheBackend(
        FileKeyValueStore(config.get_path_setting("storage.cache_dir")),
        domain=config.get("storage.domain"),
        field=config.get("storage.field"),
    )

    remote_backend = None
    if token:
        client = AsyncRetryableHttpClient(
            max_retries=config.get("remote.max_retries"),
            timeout=config.get("remote.timeout_seconds"),
            base_url=config.get("remote.base_url"),
        )
        remote_backend = RemotePreferenceBackend(
            client, endpoint=config.get("remote.preferences_endpoint")
        )

    return PreferenceStore(
        local_backend,
        remote_backend=remote_backend,
        remote_debounce_ms=config.get("sync.remote_debounce_ms"),
    )


async def run_command(args: argparse.Namespace, config: ConfigManager) -> int:
    """Run one subcommand against the user's preference store."""
    store = _create_store(config, args.token)
    session = RemoteSession(args.user or ANONYMOUS_USER_ID, args.token) if args.token else None

    try:
        store.load(args.user, session)
        # Wait for the remote fetch so commands see merged preferences
        await store.drain()

        if args.command == "show":
            _print_json(store.get_all())

        elif args.command == "get":
            if not store.has(args.path):
                print(f"No preference at {args.path}", file=sys.stderr)
                return 1
            _print_json(store.get(args.path))

        elif args.command == "set":
            store.set_path(args.path, _parse_value(args.value))
            _print_json(store.get(args.path))

        elif args.command == "reset":
            store.reset()
            print("Preferences reset to defaults")

        elif args.command == "export":
            directory = args.dir or config.get_path_setting("export.directory")
            path = write_bundle(store.export_preferences(), directory)
            print(path)

        elif args.command == "import":
            try:
                store.import_preferences(Path(args.file).read_bytes())
            except (OSError, InvalidFormatError) as e:
                print(f"Import failed: {e}", file=sys.stderr)
                return 1
            print("Preferences imported")

        elif args.command == "view":
            history = InMemoryLocationHistory(args.url)
            synchronizer = ViewStateSynchronizer(
                store,
                history,
                persist_delay_ms=config.get("sync.view_state_debounce_ms"),
                validity_days=config.get("sync.last_date_validity_days"),
            )
            state = synchronizer.mount()
            synchronizer.unmount()
            _print_json(
                {
                    "view": state.view_mode.value,
                    "date": state.focused_date.isoformat(),
                    "filters": state.active_filters,
                    "location": history.current_url(),
                }
            )

        await store.drain()
        return 0

    finally:
        store.close()
        if store.remote_backend is not None:
            await store.remote_backend.close()


def main(argv=None) -> int:
    """Main application entry point."""
    global _logger

    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager()
    except (ValueError, TypeError, OSError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    logger = setup_logging(
        level=args.log_level or config.get("logging.level"),
        console_output=config.get("logging.console_output"),
    )
    _logger = logger
    sys.excepthook = exception_hook

    logger.info(f"Starting PrefSync {get_display_version()}")
    logger.debug(f"Command: {args.command}")

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    exit_code = asyncio.run(run_command(args, config))
    logger.info(f"Finished {args.command} with exit code {exit_code}")
    app.quit()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
