from __future__ import annotations
import asyncio, logging, re

from daily_agenda.services.agenda import AgendaDocument

log = logging.getLogger("agenda.output")

# Everything below 0x20 except newline, plus DEL; ESC/GS would start printer commands.
_CONTROL_CHARS = re.compile(r"[\x00-\x09\x0b-\x1f\x7f]")
PRINTER_ENCODING = "cp437"
FEED_LINES = 3


class OutputSink:
    name = "sink"

    async def deliver(self, doc: AgendaDocument) -> bool:
        raise NotImplementedError


class ConsoleSink(OutputSink):
    name = "console"

    def __init__(self, logger: logging.Logger | None = None):
        self.log = logger or logging.getLogger("agenda.console")

    async def deliver(self, doc: AgendaDocument) -> bool:
        self.log.info(doc.header)
        for line in doc.body():
            self.log.info(line)
        return True


def printer_payload(doc: AgendaDocument) -> bytes:
    text = _CONTROL_CHARS.sub("", doc.to_text())
    return (text + "\n" * FEED_LINES).encode(PRINTER_ENCODING, errors="replace")


class ThermalPrinterSink(OutputSink):
    """Receipt printer on a serial line, or a log-only stand-in for it."""

    name = "printer"

    def __init__(self, mode: str, device: str, baud_rate: int):
        if mode not in ("device", "emulated"):
            raise ValueError(f"unknown printer mode {mode!r}")
        self.mode = mode
        self.device = device
        self.baud_rate = baud_rate

    async def deliver(self, doc: AgendaDocument) -> bool:
        if self.mode == "emulated":
            return self._emulate(doc)
        payload = printer_payload(doc)
        if not await self._configure_line():
            return False
        try:
            await asyncio.to_thread(self._write_device, payload)
        except OSError as e:
            log.error("Printing to %s failed: %s", self.device, e)
            return False
        log.info("Printed %d bytes to %s", len(payload), self.device)
        return True

    def _emulate(self, doc: AgendaDocument) -> bool:
        log.info("[printer simulation] would print to %s:", self.device)
        for line in doc.to_text().splitlines():
            log.info("[printer simulation] %s", line)
        return True

    async def _configure_line(self) -> bool:
        argv = ["stty", "-F", self.device, str(self.baud_rate)]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except OSError as e:
            log.error("Could not run %s: %s", argv[0], e)
            return False
        if proc.returncode != 0:
            log.error("Setting baud rate on %s failed (exit %s): %s", self.device,
                      proc.returncode, (stderr or b"").decode(errors="replace").strip())
            return False
        return True

    def _write_device(self, payload: bytes) -> None:
        with open(self.device, "wb") as f:
            f.write(payload)
            f.flush()


def build_sinks(cfg) -> list[OutputSink]:
    return [ConsoleSink(), ThermalPrinterSink(cfg.printer_mode, cfg.printer_device, cfg.printer_baud_rate)]
