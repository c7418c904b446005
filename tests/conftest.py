"""Shared fixtures: a throwaway config rooted in tmp_path plus client/token files."""

import json
from pathlib import Path

import pytest

from daily_agenda.config import Config

CLIENT_ID = "1234-test.apps.googleusercontent.com"
CLIENT_SECRET = "test-client-secret"


def make_config(tmp_path: Path, **overrides) -> Config:
    values = dict(
        oauth_client_file=str(tmp_path / "credentials.json"),
        oauth_client_json=None,
        token_file=str(tmp_path / "token.json"),
        gcal_id="primary",
        tz="America/Denver",
        redirect_host="localhost",
        callback_port=3000,
        callback_path="/oauth2callback",
        schedule_minute="0",
        schedule_hour="7",
        schedule_day_of_week="mon-fri",
        printer_device=str(tmp_path / "printer"),
        printer_baud_rate=19200,
        printer_mode="emulated",
        log_level="INFO",
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def client_file(tmp_path: Path) -> Path:
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps({
        "installed": {
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    }))
    return path


@pytest.fixture
def cfg(tmp_path: Path, client_file: Path) -> Config:
    return make_config(tmp_path)


@pytest.fixture
def stored_token(cfg: Config) -> Path:
    path = Path(cfg.token_file)
    path.write_text(json.dumps({
        "type": "authorized_user",
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "refresh_token": "stored-refresh-token",
    }))
    return path
