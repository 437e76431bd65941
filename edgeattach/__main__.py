"""edgeattach entry point.

Usage::

    python -m edgeattach exec microservice APP/NAME [-n NAMESPACE]
    python -m edgeattach exec agent NAME
    python -m edgeattach logs microservice APP/NAME [--tail N] [--no-follow]
    python -m edgeattach logs agent NAME [--since T] [--until T]
"""

from __future__ import annotations

import argparse
import logging
import sys

from . import attach
from .config import NamespaceNotFound, NamespaceStore
from .controlplane.cache import ResourceCaches
from .controlplane.client import ControllerError
from .logs.config import DEFAULT_TAIL, LogTailConfig

logger = logging.getLogger(__name__)

RESOURCES = ("agent", "microservice")


def _print(msg: str = "") -> None:
    print(msg, flush=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m edgeattach",
        description="Interactive exec and live logs for edge agents and microservices",
    )
    parser.add_argument(
        "--namespace", "-n",
        default="",
        help="Namespace to use (default: the config's default namespace)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="Path to config.json (default: $EDGEATTACH_CONFIG or ~/.edgeattach/config.json)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    exec_p = sub.add_parser("exec", help="Open an interactive shell")
    exec_p.add_argument("resource", choices=RESOURCES)
    exec_p.add_argument("name", help="Agent name, or APP/NAME for a microservice")

    logs_p = sub.add_parser("logs", help="Tail logs")
    logs_p.add_argument("resource", choices=RESOURCES)
    logs_p.add_argument("name", help="Agent name, or APP/NAME for a microservice")
    logs_p.add_argument("--tail", type=int, default=DEFAULT_TAIL, help="Lines of history (1-10000)")
    logs_p.add_argument(
        "--follow",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Keep streaming new lines",
    )
    logs_p.add_argument("--since", default="", help="Start time (RFC 3339)")
    logs_p.add_argument("--until", default="", help="End time (RFC 3339)")
    return parser


def run(args: argparse.Namespace) -> None:
    store = NamespaceStore.load(args.config)
    namespace = args.namespace or store.default_namespace
    store.get_namespace(namespace)

    with ResourceCaches(store) as caches:
        if args.command == "exec":
            if args.resource == "agent":
                attach.exec_agent(caches, namespace, args.name)
                _print(f"✓ Successfully closed Agent {args.name} Exec Session")
            else:
                attach.exec_microservice(caches, namespace, args.name)
                _print(f"✓ Successfully closed Microservice {args.name} Exec Session")
            return

        log_config = LogTailConfig(
            tail=args.tail, follow=args.follow, since=args.since, until=args.until
        )
        if args.resource == "agent":
            attach.agent_logs(caches, namespace, args.name, log_config)
        else:
            attach.microservice_logs(caches, namespace, args.name, log_config)


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)

    level = logging.DEBUG if args.debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        run(args)
    except (attach.AttachError, ControllerError, NamespaceNotFound) as exc:
        print(f"✘ {exc}", file=sys.stderr, flush=True)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
