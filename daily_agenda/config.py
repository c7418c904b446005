from __future__ import annotations
import os, sys
import base64, json
from dataclasses import dataclass

PRINTER_MODES = ("device", "emulated")

@dataclass(frozen=True)
class Config:
    oauth_client_file: str
    oauth_client_json: dict | None
    token_file: str
    gcal_id: str
    tz: str
    redirect_host: str
    callback_port: int
    callback_path: str
    schedule_minute: str
    schedule_hour: str
    schedule_day_of_week: str
    printer_device: str
    printer_baud_rate: int
    printer_mode: str
    log_level: str

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.redirect_host}:{self.callback_port}{self.callback_path}"

def _default_printer_mode() -> str:
    # Dev machines (macOS, Windows) have no serial printer attached.
    return "device" if sys.platform.startswith("linux") else "emulated"

def _printer_mode(value: str | None) -> str:
    if not value:
        return _default_printer_mode()
    mode = value.strip().lower()
    if mode not in PRINTER_MODES:
        raise ValueError(f"PRINTER_MODE must be one of {PRINTER_MODES}, got {value!r}")
    return mode

def _callback_path(value: str) -> str:
    return value if value.startswith("/") else "/" + value

def load_config() -> Config:
    client_b64 = os.getenv("GOOGLE_OAUTH_CLIENT_B64")
    client_json = json.loads(base64.b64decode(client_b64)) if client_b64 else None
    return Config(
        oauth_client_file=os.getenv("GOOGLE_OAUTH_CLIENT_FILE", "credentials.json"),
        oauth_client_json=client_json,
        token_file=os.getenv("GOOGLE_TOKEN_FILE", "token.json"),
        gcal_id=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
        tz=os.getenv("TIMEZONE", "America/Denver"),
        redirect_host=os.getenv("OAUTH_REDIRECT_HOST", "localhost"),
        callback_port=int(os.getenv("OAUTH_CALLBACK_PORT", "3000")),
        callback_path=_callback_path(os.getenv("OAUTH_CALLBACK_PATH", "/oauth2callback")),
        schedule_minute=os.getenv("SCHEDULE_MINUTE", "0"),
        schedule_hour=os.getenv("SCHEDULE_HOUR", "7"),
        schedule_day_of_week=os.getenv("SCHEDULE_DAY_OF_WEEK", "mon-fri"),
        printer_device=os.getenv("PRINTER_DEVICE", "/dev/serial0"),
        printer_baud_rate=int(os.getenv("PRINTER_BAUD_RATE", "19200")),
        printer_mode=_printer_mode(os.getenv("PRINTER_MODE")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
