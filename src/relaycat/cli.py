from __future__ import annotations

import argparse
import sys

from relaycat.common import (
    BindError,
    ConnectError,
    ConnectTarget,
    Diagnostics,
    ListenBind,
    RelayConfig,
    UsageError,
    check_port,
)
from relaycat.endpoints import Listener, connect
from relaycat.relay import Relay


def _port(value: str) -> int:
    try:
        return check_port(int(value))
    except (ValueError, UsageError) as exc:
        raise argparse.ArgumentTypeError(f"invalid port {value!r}: expected an integer in 1..65535") from exc


def _timeout(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid timeout {value!r}") from exc
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"timeout must be positive, got {value!r}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relaycat",
        description=(
            "Relay stdin/stdout over a single TCP connection. "
            "Connect with -addr HOST -port N, or accept one connection with -l N."
        ),
    )
    parser.add_argument("-addr", "--addr", metavar="HOST", help="Remote host to connect to")
    parser.add_argument("-port", "--port", type=_port, metavar="N", help="Remote port to connect to")
    parser.add_argument(
        "-l",
        "--listen-port",
        type=_port,
        metavar="N",
        help="Listen on this port and accept exactly one connection",
    )
    parser.add_argument(
        "-b",
        "--bind",
        default="0.0.0.0",
        metavar="HOST",
        help="Interface to listen on (default: all interfaces)",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=_timeout,
        metavar="SECONDS",
        help="Give up connecting after this many seconds (default: no timeout)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Report connect/listen/accept events on stderr")
    return parser


def resolve_mode(args: argparse.Namespace) -> ConnectTarget | ListenBind:
    """Turn parsed arguments into exactly one endpoint spec."""
    outbound = args.addr is not None or args.port is not None
    inbound = args.listen_port is not None

    if outbound and inbound:
        raise UsageError("use either -addr/-port or -l, not both")
    if inbound:
        return ListenBind(port=args.listen_port, host=args.bind)
    if not outbound:
        raise UsageError("nothing to do: give -addr HOST -port N or -l N")
    if not args.addr:
        raise UsageError("-port needs -addr")
    if args.port is None:
        raise UsageError("-addr needs -port")
    return ConnectTarget(args.addr, args.port)


def run_connect(target: ConnectTarget, config: RelayConfig) -> int:
    diagnostics = Diagnostics(config)
    stream = connect(target, config, diagnostics)
    Relay(stream, config, diagnostics=diagnostics).run()
    return 0


def run_listen(bind: ListenBind, config: RelayConfig) -> int:
    diagnostics = Diagnostics(config)
    with Listener(bind, config, diagnostics) as listener:
        stream = listener.accept_one()
        Relay(stream, config, diagnostics=diagnostics).run()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        endpoint = resolve_mode(args)
    except UsageError as exc:
        parser.error(str(exc))

    config = RelayConfig(verbose=args.verbose, connect_timeout=args.timeout)

    try:
        if isinstance(endpoint, ListenBind):
            return run_listen(endpoint, config)
        return run_connect(endpoint, config)
    except (ConnectError, BindError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        # Ctrl-C while connecting or waiting for a client.
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
