from __future__ import annotations

import enum
import os
import select
import socket
import sys
import threading
from typing import TextIO

from relaycat.common import Diagnostics, RelayConfig

DEFAULT_BUFSIZE = 4096
# Inbound bytes are shown one byte per character.
DISPLAY_ENCODING = "latin-1"


class Termination(enum.Enum):
    REMOTE_CLOSED = "remote closed"
    LOCAL_EOF = "local input closed"
    RESET = "connection reset"
    ERROR = "i/o error"
    INTERRUPTED = "interrupted"


class ErrorKind(enum.Enum):
    NORMAL_CLOSE = "normal close"
    FAILURE = "failure"


_NORMAL_CLOSE_ERRORS = (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)


def classify_error(exc: OSError, cancelled: bool = False) -> ErrorKind:
    """Decide whether a stream error is an expected close or a real failure.

    Errors raised after the relay was cancelled come from our own shutdown of
    the stream and always count as a normal close.
    """
    if cancelled or isinstance(exc, _NORMAL_CLOSE_ERRORS):
        return ErrorKind.NORMAL_CLOSE
    return ErrorKind.FAILURE


def _receive_buffer_size(sock: socket.socket) -> int:
    try:
        size = sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF)
    except OSError:
        return DEFAULT_BUFSIZE
    return size if size > 0 else DEFAULT_BUFSIZE


def _selectable_fd(stream: TextIO) -> int | None:
    # io.UnsupportedOperation subclasses both OSError and ValueError. On
    # Windows select() refuses anything that is not a socket.
    try:
        fd = stream.fileno()
        select.select([fd], [], [], 0)
    except (AttributeError, OSError, ValueError):
        return None
    return fd


class Relay:
    """Full-duplex copy between one stream and the local terminal.

    Two daemon threads do the work: the inbound task copies socket bytes to
    ``output``, the outbound task sends each line of ``input`` followed by a
    single ``\\n``. Whichever task stops first sets the shared cancel event;
    the stream is then shut down and closed, which unblocks the other task.
    Stream errors never escape :meth:`run`.
    """

    POLL_INTERVAL = 0.1

    def __init__(
        self,
        stream: socket.socket,
        config: RelayConfig,
        input: TextIO | None = None,
        output: TextIO | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self.stream = stream
        self.config = config
        self.input = input if input is not None else sys.stdin
        self.output = output if output is not None else sys.stdout
        self.diagnostics = diagnostics or Diagnostics(config)
        self.bufsize = _receive_buffer_size(stream)

        self._input_fd = _selectable_fd(self.input)
        self._input_encoding = getattr(self.input, "encoding", None) or "utf-8"
        self._output_encoding = getattr(self.output, "encoding", None)
        self._pending = b""

        self._cancel = threading.Event()
        self._state_lock = threading.Lock()
        self._termination: Termination | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def termination(self) -> Termination | None:
        return self._termination

    def run(self) -> Termination:
        inbound = threading.Thread(target=self._inbound, name="relaycat-inbound", daemon=True)
        outbound = threading.Thread(target=self._outbound, name="relaycat-outbound", daemon=True)
        try:
            inbound.start()
            outbound.start()
            self._cancel.wait()
        except KeyboardInterrupt:
            self._finish(Termination.INTERRUPTED)
        finally:
            self.close()

        inbound.join()
        # A blocking readline() on a non-selectable input cannot be
        # interrupted; the daemon thread is left behind in that case.
        outbound.join(self.POLL_INTERVAL * 2)
        termination = self._termination or Termination.ERROR
        self.diagnostics.note(f"relay finished: {termination.value}")
        return termination

    def close(self) -> None:
        """Shut down and close the stream. Only the first call has any effect."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.stream.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already disconnected.
            pass
        self.stream.close()

    def _finish(self, reason: Termination) -> None:
        with self._state_lock:
            if self._termination is None:
                self._termination = reason
        self._cancel.set()

    def _fail(self, exc: OSError) -> None:
        if classify_error(exc, self._cancel.is_set()) is ErrorKind.NORMAL_CLOSE:
            self._finish(Termination.RESET)
            return
        self.diagnostics.error(f"relay error: {exc}")
        self._finish(Termination.ERROR)

    def _crash(self, exc: Exception) -> None:
        self.diagnostics.error(f"relay error: {exc!r}")
        self._finish(Termination.ERROR)

    def _display(self, data: bytes) -> str:
        text = data.decode(DISPLAY_ENCODING)
        if self._output_encoding:
            # Characters the terminal cannot show become replacement marks.
            text = text.encode(self._output_encoding, errors="replace").decode(self._output_encoding)
        return text

    def _inbound(self) -> None:
        try:
            while not self._cancel.is_set():
                data = self.stream.recv(self.bufsize)
                if not data:
                    self._finish(Termination.REMOTE_CLOSED)
                    return
                self.output.write(self._display(data))
                self.output.flush()
        except OSError as exc:
            self._fail(exc)
        except Exception as exc:
            self._crash(exc)
        finally:
            # No-op unless the task died without recording a reason.
            self._finish(Termination.ERROR)

    def _outbound(self) -> None:
        try:
            while True:
                line = self._read_line()
                if line is None:
                    self._finish(Termination.LOCAL_EOF)
                    return
                if self._cancel.is_set():
                    return
                self.stream.sendall(line + b"\n")
        except OSError as exc:
            self._fail(exc)
        except Exception as exc:
            self._crash(exc)
        finally:
            self._finish(Termination.ERROR)

    def _read_line(self) -> bytes | None:
        """Next input line without its terminator, or None at end of input.

        Also returns None once the relay is cancelled, provided the input can
        be polled with select().
        """
        if self._input_fd is None:
            text = self.input.readline()
            if not text:
                return None
            text = text.removesuffix("\n").removesuffix("\r")
            return text.encode(self._input_encoding, errors="replace")

        while True:
            newline = self._pending.find(b"\n")
            if newline >= 0:
                line = self._pending[:newline]
                self._pending = self._pending[newline + 1:]
                return line.removesuffix(b"\r")
            if self._cancel.is_set():
                return None
            readable, _, _ = select.select([self._input_fd], [], [], self.POLL_INTERVAL)
            if not readable:
                continue
            chunk = os.read(self._input_fd, DEFAULT_BUFSIZE)
            if not chunk:
                if not self._pending:
                    return None
                line, self._pending = self._pending, b""
                return line.removesuffix(b"\r")
            self._pending += chunk
