# auth_gcal.py: one-time authorization on a machine with a browser
import asyncio

from dotenv import load_dotenv
load_dotenv()

from daily_agenda.config import load_config
from daily_agenda.services.credentials import CredentialStore
from daily_agenda.services.oauth import AuthorizationFlow, AuthorizationSession

cfg = load_config()
store = CredentialStore(cfg.token_file, cfg.oauth_client_file, cfg.oauth_client_json)
asyncio.run(AuthorizationFlow(cfg, store, AuthorizationSession()).authorize())
print("✅ Google Calendar auth OK. Token saved at:", cfg.token_file)
