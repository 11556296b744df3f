# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest
import serial

import adapters.serial_transport as transport_mod
from adapters.serial_transport import SerialTransport, serial_kwargs
from orchestrator.runtime_context import Transport, TransportError
from session.connection_status import ConnectionStatus
from settings.records import SerialConfig


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakePort:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.is_open = True
        self.written: list[bytes] = []
        self.fail_writes = False

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise serial.SerialException("device unplugged")
        self.written.append(data)
        return len(data)

    def close(self) -> None:
        self.is_open = False


@pytest.fixture
def emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(transport_mod, "log_event", events.append)
    return events


def make_transport() -> tuple[SerialTransport, list[FakePort]]:
    ports: list[FakePort] = []

    def factory(**kwargs: Any) -> FakePort:
        port = FakePort(**kwargs)
        ports.append(port)
        return port

    return SerialTransport(serial_factory=factory, start_reader=False), ports


# ---------------------------------------------------------------------
# 1. Configuration
# ---------------------------------------------------------------------

def test_serial_kwargs_translate_config():
    kwargs = serial_kwargs(SerialConfig(port="COM5", baud=9600, data_bits=7, parity="Even", stop_bits=2))

    assert kwargs["port"] == "COM5"
    assert kwargs["baudrate"] == 9600
    assert kwargs["bytesize"] == serial.SEVENBITS
    assert kwargs["parity"] == serial.PARITY_EVEN
    assert kwargs["stopbits"] == serial.STOPBITS_TWO


def test_serial_kwargs_defaults():
    kwargs = serial_kwargs(SerialConfig(port="/dev/ttyUSB0"))
    assert kwargs["bytesize"] == serial.EIGHTBITS
    assert kwargs["parity"] == serial.PARITY_NONE
    assert kwargs["stopbits"] == serial.STOPBITS_ONE


def test_serial_transport_satisfies_transport_protocol():
    transport, _ = make_transport()
    assert isinstance(transport, Transport)


# ---------------------------------------------------------------------
# 2. Lifecycle / send
# ---------------------------------------------------------------------

def test_send_requires_open_port(emitted):
    transport, _ = make_transport()
    with pytest.raises(TransportError):
        transport.send("BEEPTEST\r\n")


def test_open_then_send_appends_crlf_once(emitted):
    transport, ports = make_transport()
    transport.open(SerialConfig(port="COM1"))

    transport.send("BEEPTEST")
    transport.send("LEDTEST:0\r\n")

    assert ports[0].written == [b"BEEPTEST\r\n", b"LEDTEST:0\r\n"]
    assert transport.status is ConnectionStatus.UP
    assert emitted[-1]["event_type"] == "SERIAL_OPENED"


def test_write_failure_raises_transport_error(emitted):
    transport, ports = make_transport()
    transport.open(SerialConfig(port="COM1"))
    ports[0].fail_writes = True

    with pytest.raises(TransportError):
        transport.send("BEEPTEST")


def test_open_failure_is_reported(emitted):
    def factory(**kwargs: Any) -> FakePort:
        raise serial.SerialException("access denied")

    transport = SerialTransport(serial_factory=factory, start_reader=False)

    with pytest.raises(TransportError):
        transport.open(SerialConfig(port="COM9"))
    assert transport.status is ConnectionStatus.FAILED
    assert not transport.is_open()
    assert emitted[-1]["event_type"] == "SERIAL_OPEN_FAILED"


def test_close_marks_transport_down(emitted):
    transport, ports = make_transport()
    transport.open(SerialConfig(port="COM1"))
    transport.close()

    assert not transport.is_open()
    assert not ports[0].is_open
    assert transport.status is ConnectionStatus.DOWN


# ---------------------------------------------------------------------
# 3. Receive path
# ---------------------------------------------------------------------

def test_feed_delivers_complete_lines(emitted):
    transport, _ = make_transport()
    received: list[str] = []
    transport.subscribe(received.append)

    transport.feed(b"SETPRUN:1,")
    transport.feed(b"100\r\n\r\nOK\n")

    assert received == ["SETPRUN:1,100", "OK"]


def test_feed_overflow_is_logged(emitted):
    transport, _ = make_transport()
    transport.feed(b"x" * 9000)
    assert emitted[-1]["event_type"] == "RX_BUFFER_OVERFLOW"
