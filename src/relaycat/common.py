from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TextIO


class RelayError(Exception):
    """Base class for errors reported to the user before exiting."""


class UsageError(RelayError):
    pass


class ConnectError(RelayError):
    pass


class BindError(RelayError):
    pass


@dataclass(frozen=True)
class ConnectTarget:
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ListenBind:
    port: int
    host: str = "0.0.0.0"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class RelayConfig:
    verbose: bool = False
    connect_timeout: float | None = None


def check_port(port: int) -> int:
    if not 1 <= port <= 65535:
        raise UsageError(f"port must be in 1..65535, got {port}")
    return port


class Diagnostics:
    """Writes ``[relaycat]`` lines to the diagnostic stream, never to relayed output."""

    def __init__(self, config: RelayConfig, stream: TextIO | None = None) -> None:
        self.verbose = config.verbose
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def note(self, message: str) -> None:
        if self.verbose:
            print(f"[relaycat] {message}", file=self.stream, flush=True)

    def error(self, message: str) -> None:
        print(f"[relaycat] {message}", file=self.stream, flush=True)
