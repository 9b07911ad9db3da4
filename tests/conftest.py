from __future__ import annotations

import os
import socket
from typing import Iterator

import pytest


class PipeInput:
    """Local input backed by an OS pipe, so the relay polls it with select()."""

    def __init__(self) -> None:
        read_fd, self.write_fd = os.pipe()
        self.reader = os.fdopen(read_fd, "r")

    def send(self, text: str) -> None:
        os.write(self.write_fd, text.encode())

    def close_writer(self) -> None:
        if self.write_fd >= 0:
            os.close(self.write_fd)
            self.write_fd = -1

    def close(self) -> None:
        self.close_writer()
        self.reader.close()


@pytest.fixture
def pipe_input() -> Iterator[PipeInput]:
    pipe = PipeInput()
    yield pipe
    pipe.close()


@pytest.fixture
def tcp_pair() -> Iterator[tuple[socket.socket, socket.socket]]:
    """A connected loopback TCP pair: (relay side, peer side)."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        peer = socket.create_connection(server.getsockname())
        local, _addr = server.accept()
    with peer:
        yield local, peer
    local.close()


def free_tcp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def read_until_eof(sock: socket.socket) -> bytes:
    chunks: list[bytes] = []
    while True:
        data = sock.recv(4096)
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)
