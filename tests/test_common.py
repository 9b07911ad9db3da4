import io

import pytest

from relaycat.common import ConnectTarget, Diagnostics, ListenBind, RelayConfig, UsageError, check_port


@pytest.mark.parametrize("port", [1, 80, 65535])
def test_check_port_accepts_valid(port: int) -> None:
    assert check_port(port) == port


@pytest.mark.parametrize("port", [-1, 0, 65536])
def test_check_port_rejects_out_of_range(port: int) -> None:
    with pytest.raises(UsageError):
        check_port(port)


def test_endpoints_render_as_host_port() -> None:
    assert str(ConnectTarget("example.org", 4444)) == "example.org:4444"
    assert str(ListenBind(4444)) == "0.0.0.0:4444"


def test_notes_only_when_verbose() -> None:
    quiet, loud = io.StringIO(), io.StringIO()
    Diagnostics(RelayConfig(), quiet).note("listening")
    Diagnostics(RelayConfig(verbose=True), loud).note("listening")

    assert quiet.getvalue() == ""
    assert loud.getvalue() == "[relaycat] listening\n"


def test_errors_always_reported() -> None:
    out = io.StringIO()
    Diagnostics(RelayConfig(), out).error("relay error: boom")
    assert out.getvalue() == "[relaycat] relay error: boom\n"
