from __future__ import annotations
from enum import Enum
from typing import Awaitable, Callable, Optional
import asyncio, logging, socket

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from daily_agenda.config import Config
from daily_agenda.services.credentials import SCOPES, CredentialStore, client_config

log = logging.getLogger("agenda.oauth")

SUCCESS_PAGE = "<h1>Authentication successful!</h1><p>You can close this window.</p>"
FAILURE_PAGE = "<h1>Authentication failed!</h1><p>Check the agenda log for details.</p>"
MISSING_CODE_PAGE = "<h1>No authorization code</h1><p>Still waiting for the Google redirect.</p>"
ALREADY_HANDLED_PAGE = "<h1>Already handled</h1><p>This authorization has already completed.</p>"


class AuthorizationError(RuntimeError):
    pass

class AuthorizationInProgressError(AuthorizationError):
    pass


class RequestState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"

class FlowState(str, Enum):
    CHECK_CACHE = "check_cache"
    CACHED_VALID = "cached_valid"
    NEEDS_GRANT = "needs_grant"
    AWAIT_REDIRECT = "await_redirect"
    EXCHANGING = "exchanging"
    GRANTED = "granted"
    GRANT_FAILED = "grant_failed"


class AuthorizationRequest:
    """Single-slot channel between the callback handler and the waiting flow."""

    def __init__(self):
        self.state = RequestState.PENDING
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()

    def resolve(self, creds: Credentials) -> None:
        if self.state is not RequestState.PENDING:
            raise AuthorizationError(f"authorization request already {self.state.value}")
        self.state = RequestState.RESOLVED
        self.future.set_result(creds)

    def fail(self, exc: BaseException) -> None:
        if self.state is not RequestState.PENDING:
            raise AuthorizationError(f"authorization request already {self.state.value}")
        self.state = RequestState.FAILED
        self.future.set_exception(exc)
        # The waiting flow may already be gone; don't warn about an unread exception.
        self.future.add_done_callback(lambda f: f.exception())


class AuthorizationSession:
    """Owns the one authorization request allowed to be in flight."""

    def __init__(self):
        self._request: Optional[AuthorizationRequest] = None

    @property
    def pending(self) -> bool:
        return self._request is not None and self._request.state is RequestState.PENDING

    def begin(self) -> AuthorizationRequest:
        if self.pending:
            raise AuthorizationInProgressError("an authorization is already waiting for its redirect")
        self._request = AuthorizationRequest()
        return self._request

    def end(self, request: AuthorizationRequest) -> None:
        if self._request is request:
            self._request = None


class CallbackListener:
    """Short-lived HTTP endpoint that receives the provider's redirect.

    Only the first request carrying ``code`` (or ``error``) is handled;
    the listener shuts itself down after answering it.
    """

    def __init__(self, host: str, port: int, path: str,
                 on_code: Callable[[str], Awaitable[None]],
                 on_error: Callable[[str], None]):
        self.host = host
        self.port = port
        self.path = path
        self._on_code = on_code
        self._on_error = on_error
        self.handled = False
        self.app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
        self.app.add_api_route(path, self.callback, methods=["GET"], response_class=HTMLResponse)
        self._server: Optional[uvicorn.Server] = None
        self.task: Optional[asyncio.Task] = None

    async def callback(self, request: Request) -> HTMLResponse:
        if self.handled:
            log.info("Ignoring redirect after authorization completed")
            return HTMLResponse(ALREADY_HANDLED_PAGE, status_code=409)
        code = request.query_params.get("code")
        error = request.query_params.get("error")
        if not code and not error:
            log.info("Redirect without authorization code; still waiting")
            return HTMLResponse(MISSING_CODE_PAGE, status_code=400)

        # Claimed before the first await so a concurrent redirect sees it.
        self.handled = True
        try:
            if code:
                await self._on_code(code)
            else:
                self._on_error(error)
        except Exception:
            log.exception("Authorization exchange failed")
            return HTMLResponse(FAILURE_PAGE, status_code=500)
        finally:
            self.close()
        return HTMLResponse(SUCCESS_PAGE, status_code=200)

    async def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        self.port = sock.getsockname()[1]
        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level="warning",
            lifespan="off",
            timeout_graceful_shutdown=5,
        )
        self._server = uvicorn.Server(config)
        self.task = asyncio.create_task(self._serve(sock))
        log.info("Callback listener running on http://%s:%d%s", self.host, self.port, self.path)

    async def _serve(self, sock: socket.socket) -> None:
        try:
            await self._server.serve(sockets=[sock])
        finally:
            sock.close()

    def close(self) -> None:
        """Stop accepting connections; in-flight responses still complete."""
        if self._server is not None:
            self._server.should_exit = True

    async def stop(self) -> None:
        self.close()
        if self.task is not None:
            await self.task
            log.info("Callback listener on port %d stopped", self.port)


class AuthorizationFlow:
    """Produces a usable credential, running the browser grant only on a cache miss."""

    def __init__(self, cfg: Config, store: CredentialStore, session: AuthorizationSession,
                 listener_factory=CallbackListener):
        self.cfg = cfg
        self.store = store
        self.session = session
        self.listener_factory = listener_factory
        self.state = FlowState.CHECK_CACHE
        self.listener: Optional[CallbackListener] = None

    def _oauth_flow(self) -> Flow:
        try:
            config = client_config(self.cfg.oauth_client_file, self.cfg.oauth_client_json)
        except (OSError, ValueError, RuntimeError) as e:
            raise AuthorizationError(f"cannot read OAuth client identity: {e}") from e
        return Flow.from_client_config(config, scopes=SCOPES, redirect_uri=self.cfg.redirect_uri)

    async def authorize(self) -> Credentials:
        self.state = FlowState.CHECK_CACHE
        creds = self.store.load()
        if creds is not None:
            self.state = FlowState.CACHED_VALID
            return creds

        self.state = FlowState.NEEDS_GRANT
        request = self.session.begin()
        try:
            return await self._grant(request)
        finally:
            self.session.end(request)

    async def _grant(self, request: AuthorizationRequest) -> Credentials:
        try:
            oauth = self._oauth_flow()
        except AuthorizationError:
            self.state = FlowState.GRANT_FAILED
            raise
        auth_url, _ = oauth.authorization_url(access_type="offline", prompt="consent")

        async def on_code(code: str) -> None:
            await self._exchange(oauth, code, request)

        def on_error(error: str) -> None:
            self.state = FlowState.GRANT_FAILED
            exc = AuthorizationError(f"authorization denied: {error}")
            request.fail(exc)
            raise exc

        listener = self.listener_factory(self.cfg.redirect_host, self.cfg.callback_port,
                                         self.cfg.callback_path, on_code, on_error)
        try:
            await listener.start()
        except OSError as e:
            self.state = FlowState.GRANT_FAILED
            raise AuthorizationError(
                f"cannot bind callback listener on port {self.cfg.callback_port}: {e}") from e
        self.listener = listener

        log.warning("Authorize this app by visiting this url: %s", auth_url)
        self.state = FlowState.AWAIT_REDIRECT
        try:
            await asyncio.wait({request.future, listener.task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await listener.stop()

        if not request.future.done():
            self.state = FlowState.GRANT_FAILED
            raise AuthorizationError("callback listener stopped before a redirect arrived")
        exc = request.future.exception()
        if exc is not None:
            if isinstance(exc, AuthorizationError):
                raise exc
            raise AuthorizationError(f"token exchange failed: {exc}") from exc
        return request.future.result()

    async def _exchange(self, oauth: Flow, code: str, request: AuthorizationRequest) -> None:
        self.state = FlowState.EXCHANGING
        try:
            await asyncio.to_thread(oauth.fetch_token, code=code)
            creds = oauth.credentials
            if not creds.refresh_token:
                raise AuthorizationError("grant did not include a refresh token")
            await asyncio.to_thread(self.store.save, creds.refresh_token)
        except Exception as e:
            self.state = FlowState.GRANT_FAILED
            request.fail(e)
            raise
        self.state = FlowState.GRANTED
        request.resolve(creds)
        log.info("Authorization granted")
