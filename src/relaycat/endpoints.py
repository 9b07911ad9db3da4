from __future__ import annotations

import socket

from relaycat.common import BindError, ConnectError, ConnectTarget, Diagnostics, ListenBind, RelayConfig, UsageError, check_port


def connect(target: ConnectTarget, config: RelayConfig, diagnostics: Diagnostics | None = None) -> socket.socket:
    """Open an outbound TCP stream to ``target``. No retry."""
    diag = diagnostics or Diagnostics(config)
    if not target.host:
        raise UsageError("target address must not be empty")
    check_port(target.port)

    diag.note(f"connecting to {target}")
    try:
        sock = socket.create_connection((target.host, target.port), timeout=config.connect_timeout)
    except OSError as exc:
        raise ConnectError(f"could not connect to {target}: {exc}") from exc
    # The timeout only bounds connect(); the relay blocks normally.
    sock.settimeout(None)
    diag.note(f"connected to {target}")
    return sock


class Listener:
    """Binds a local port and hands out exactly one accepted stream.

    The listening socket stays open until :meth:`close` (or the end of the
    ``with`` block); connections queued after the first are never accepted.
    """

    def __init__(self, bind: ListenBind, config: RelayConfig, diagnostics: Diagnostics | None = None) -> None:
        self.bind = bind
        self.config = config
        self.diagnostics = diagnostics or Diagnostics(config)
        self._server: socket.socket | None = None
        self._accepted = False

    def open(self) -> None:
        # Port 0 lets the OS pick a free port.
        if self.bind.port != 0:
            check_port(self.bind.port)
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server.bind((self.bind.host, self.bind.port))
            server.listen(1)
        except OSError as exc:
            server.close()
            raise BindError(f"could not listen on {self.bind}: {exc}") from exc
        self._server = server
        host, port = self.address
        self.diagnostics.note(f"listening on {host}:{port}")

    @property
    def address(self) -> tuple[str, int]:
        if self._server is None:
            raise RuntimeError("listener is not open")
        return self._server.getsockname()[:2]

    def accept_one(self) -> socket.socket:
        if self._server is None:
            raise RuntimeError("listener is not open")
        if self._accepted:
            raise RuntimeError("listener already accepted its connection")
        conn, addr = self._server.accept()
        self._accepted = True
        self.diagnostics.note(f"connection from {addr[0]}:{addr[1]}")
        return conn

    def close(self) -> None:
        if self._server is not None:
            self._server.close()
            self._server = None

    def __enter__(self) -> Listener:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
