import logging
from types import SimpleNamespace

import pytest

from daily_agenda.services import sinks
from daily_agenda.services.agenda import AgendaDocument, AgendaLine, NO_EVENTS
from daily_agenda.services.sinks import ConsoleSink, ThermalPrinterSink, printer_payload


class FakeProcess:
    def __init__(self, returncode, stderr=b""):
        self.returncode = returncode
        self._stderr = stderr

    async def communicate(self):
        return b"", self._stderr


@pytest.fixture
def spawned(monkeypatch):
    spawned = SimpleNamespace(argvs=[], returncode=0)

    async def fake_exec(*argv, **kwargs):
        spawned.argvs.append(argv)
        return FakeProcess(spawned.returncode, b"stty: bad device")

    monkeypatch.setattr(sinks.asyncio, "create_subprocess_exec", fake_exec)
    return spawned


@pytest.fixture
def doc():
    return AgendaDocument(date_label="3/4/2024", lines=[AgendaLine("02:00", "Standup")])


@pytest.mark.asyncio
async def test_console_sink_logs_every_line(doc, caplog):
    caplog.set_level(logging.INFO, logger="agenda.console")
    assert await ConsoleSink().deliver(doc) is True
    assert "Today's agenda (3/4/2024):" in caplog.messages
    assert "02:00 - Standup" in caplog.messages


@pytest.mark.asyncio
async def test_console_sink_logs_no_events_statement(caplog):
    caplog.set_level(logging.INFO, logger="agenda.console")
    await ConsoleSink().deliver(AgendaDocument(date_label="3/4/2024"))
    assert NO_EVENTS in caplog.messages


@pytest.mark.asyncio
async def test_emulated_printer_never_spawns_processes(doc, spawned, tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="agenda.output")
    device = tmp_path / "printer"
    sink = ThermalPrinterSink("emulated", str(device), 19200)
    assert await sink.deliver(doc) is True
    assert spawned.argvs == []
    assert not device.exists()
    assert any("[printer simulation]" in m and "Standup" in m for m in caplog.messages)


@pytest.mark.asyncio
async def test_device_printer_sets_baud_then_writes(doc, spawned, tmp_path):
    device = tmp_path / "printer"
    sink = ThermalPrinterSink("device", str(device), 19200)
    assert await sink.deliver(doc) is True
    assert spawned.argvs == [("stty", "-F", str(device), "19200")]
    assert device.read_bytes() == printer_payload(doc)


@pytest.mark.asyncio
async def test_baud_failure_prevents_write(doc, spawned, tmp_path, monkeypatch, caplog):
    spawned.returncode = 1
    writes = []
    sink = ThermalPrinterSink("device", str(tmp_path / "printer"), 19200)
    monkeypatch.setattr(sink, "_write_device", writes.append)
    assert await sink.deliver(doc) is False
    assert writes == []
    assert any("baud rate" in m for m in caplog.messages)


@pytest.mark.asyncio
async def test_missing_stty_prevents_write(doc, tmp_path, monkeypatch):
    async def no_stty(*argv, **kwargs):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(sinks.asyncio, "create_subprocess_exec", no_stty)
    writes = []
    sink = ThermalPrinterSink("device", str(tmp_path / "printer"), 19200)
    monkeypatch.setattr(sink, "_write_device", writes.append)
    assert await sink.deliver(doc) is False
    assert writes == []


@pytest.mark.asyncio
async def test_write_failure_is_logged_not_raised(doc, spawned, tmp_path, caplog):
    sink = ThermalPrinterSink("device", str(tmp_path / "no-such-dir" / "printer"), 19200)
    assert await sink.deliver(doc) is False
    assert any("Printing to" in m for m in caplog.messages)


def test_payload_strips_control_characters_and_feeds_paper():
    doc = AgendaDocument(date_label="3/4/2024", lines=[AgendaLine("09:00", "\x1b@Reset; $(rm -rf /) `id`")])
    payload = printer_payload(doc)
    assert b"\x1b" not in payload
    assert b"09:00 - @Reset; $(rm -rf /) `id`" in payload
    assert payload.endswith(b"\n\n\n")


def test_payload_replaces_unencodable_text():
    doc = AgendaDocument(date_label="3/4/2024", lines=[AgendaLine("09:00", "Café ☕")])
    assert "Café ?".encode("cp437") in printer_payload(doc)


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        ThermalPrinterSink("laser", "/dev/null", 9600)
