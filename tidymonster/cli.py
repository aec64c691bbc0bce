"""
Tidy Monster CLI.

Commands:
    run                  Tidy in the foreground until Ctrl+C
    serve                Serve the control API (optionally tidying right away)
    settings show        Print the effective settings
    settings set K V     Change one setting (V is parsed as JSON, else text)

Exit Codes:
===========
- 0: Success
- 1: Invalid settings or arguments
- 2: Tidying stopped with an error (e.g. a watched desktop disappeared)
"""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import List, Optional

from . import __version__
from .api import DEFAULT_HOST, DEFAULT_PORT, create_app, run_server
from .desktop import delete_file, item_set_factory
from .itemsets import ItemSetError
from .logs import RingBufferHandler, configure_logging
from .service import TidyOrchestrator, TidyService
from .settings import (
    KeyValueStore,
    SettingsError,
    default_config_path,
    load_settings,
    open_settings_store,
    save_setting,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_FAILED = 2


def build_orchestrator(store: KeyValueStore) -> TidyOrchestrator:
    """Wire the orchestrator to the desktop for the settings in `store`."""
    settings = load_settings(store)
    return TidyOrchestrator(
        item_set_factory=item_set_factory(store),
        delete=delete_file,
        backoff=settings.backoff_policy(),
        tolerate_partial_start=True,
    )


def cmd_run(args: argparse.Namespace, store: KeyValueStore) -> int:
    settings = load_settings(store)
    configure_logging(minimum_severity=settings.minimum_severity)
    orchestrator = build_orchestrator(store)

    cancel = threading.Event()

    def request_stop(signum, frame):
        logger.info(f"Received signal {signum}, stopping")
        cancel.set()

    previous = {
        signum: signal.signal(signum, request_stop)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        orchestrator.run(cancel)
    except ItemSetError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILED
    except Exception as e:
        logger.exception(f"Tidying stopped with an unexpected error: {e}")
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    return EXIT_OK


def cmd_serve(args: argparse.Namespace, store: KeyValueStore) -> int:
    settings = load_settings(store)
    buffer = RingBufferHandler()
    configure_logging(buffer, minimum_severity=settings.minimum_severity)

    service = TidyService(build_orchestrator(store))
    app = create_app(service, store, buffer)

    if args.start_service:
        service.start()

    try:
        run_server(app, host=args.host, port=args.port)
    finally:
        service.stop(wait=True)
    return EXIT_OK


def cmd_settings_show(args: argparse.Namespace, store: KeyValueStore) -> int:
    settings = load_settings(store)
    print(f"# {args.config or default_config_path()}")
    print(json.dumps(settings.model_dump(mode="json"), indent=2, sort_keys=True))
    return EXIT_OK


def cmd_settings_set(args: argparse.Namespace, store: KeyValueStore) -> int:
    try:
        value = json.loads(args.value)
    except ValueError:
        value = args.value

    settings = save_setting(store, args.key, value)
    print(f"{args.key} = {json.dumps(settings.model_dump(mode='json')[args.key])}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tidymonster",
        description="Keep desktops free of shortcut files.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        help="Settings file (default: $TIDYMONSTER_CONFIG or the user config directory)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Tidy in the foreground until interrupted")
    run.set_defaults(handler=cmd_run)

    serve = commands.add_parser("serve", help="Serve the control API")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument(
        "--start-service",
        action="store_true",
        help="Start tidying immediately instead of waiting for the operator",
    )
    serve.set_defaults(handler=cmd_serve)

    settings = commands.add_parser("settings", help="Show or change settings")
    settings_commands = settings.add_subparsers(dest="settings_command", required=True)

    show = settings_commands.add_parser("show", help="Print the effective settings")
    show.set_defaults(handler=cmd_settings_show)

    set_ = settings_commands.add_parser("set", help="Change one setting")
    set_.add_argument("key")
    set_.add_argument("value")
    set_.set_defaults(handler=cmd_settings_set)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    store = open_settings_store(args.config)

    try:
        return args.handler(args, store)
    except SettingsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
