from __future__ import annotations
from typing import Optional
import os, json, logging, tempfile

from google.oauth2.credentials import Credentials

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]

log = logging.getLogger("agenda.credentials")

def client_identity(oauth_client_file: str | None, oauth_client_json: dict | None = None) -> dict:
    """Return the app's registered {client_id, client_secret, ...} block.

    Client config files downloaded from the Google console wrap the
    identity in either an ``installed`` or a ``web`` key.
    """
    if oauth_client_json is not None:
        keys = oauth_client_json
    elif oauth_client_file:
        with open(oauth_client_file) as f:
            keys = json.load(f)
    else:
        raise RuntimeError("No OAuth client provided")
    key = keys.get("installed") or keys.get("web")
    if not key or not key.get("client_id") or not key.get("client_secret"):
        raise ValueError("OAuth client config has no 'installed' or 'web' client identity")
    return key

def client_config(oauth_client_file: str | None, oauth_client_json: dict | None = None) -> dict:
    """Client identity in the shape google_auth_oauthlib expects."""
    key = client_identity(oauth_client_file, oauth_client_json)
    return {
        "installed": {
            "client_id": key["client_id"],
            "client_secret": key["client_secret"],
            "auth_uri": key.get("auth_uri", "https://accounts.google.com/o/oauth2/auth"),
            "token_uri": key.get("token_uri", "https://oauth2.googleapis.com/token"),
        }
    }

def is_usable(creds: Credentials) -> bool:
    if creds.refresh_token:
        return True
    return bool(creds.token) and not creds.expired


class CredentialStore:
    """Persists the authorized-user credential as JSON on disk."""

    def __init__(self, token_file: str, oauth_client_file: str | None = None,
                 oauth_client_json: dict | None = None):
        self.token_file = token_file
        self.oauth_client_file = oauth_client_file
        self.oauth_client_json = oauth_client_json

    def load(self) -> Optional[Credentials]:
        try:
            with open(self.token_file) as f:
                info = json.load(f)
            if not isinstance(info, dict):
                raise ValueError("token file does not hold a JSON object")
            creds = Credentials.from_authorized_user_info(info, SCOPES)
        except FileNotFoundError:
            log.info("No stored credential at %s", self.token_file)
            return None
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable credential at %s: %s", self.token_file, e)
            return None
        if not is_usable(creds):
            log.warning("Stored credential at %s has no refresh token and is expired", self.token_file)
            return None
        return creds

    def save(self, refresh_token: str) -> None:
        key = client_identity(self.oauth_client_file, self.oauth_client_json)
        payload = json.dumps({
            "type": "authorized_user",
            "client_id": key["client_id"],
            "client_secret": key["client_secret"],
            "refresh_token": refresh_token,
        })
        directory = os.path.dirname(os.path.abspath(self.token_file))
        os.makedirs(directory, exist_ok=True)
        # Same directory as the target so the rename stays on one filesystem.
        fd, tmp_path = tempfile.mkstemp(prefix=".token-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.token_file)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
        log.info("Saved credential to %s", self.token_file)
