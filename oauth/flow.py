"""OAuth authorization-code flow for the CLI

One ``OAuthFlow`` drives a single login: it builds the authorization URL,
collects the code either from the loopback callback listener or from text
the user pastes back, checks the state nonce and exchanges the code. The
wait for the code ends on whichever comes first of the code, the timeout, or
cancellation (Ctrl-C or the caller's ``cancel_event``).
"""

import asyncio
import logging
import signal
import threading
import webbrowser
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import httpx
from rich.console import Console

import settings
from api.errors import (
    AuthorizationCanceledError,
    AuthorizationDeniedError,
    AuthorizationError,
    AuthorizationTimeoutError,
    StateMismatchError,
)
from .authorization import build_authorization_url, create_state, with_port
from .callback_server import OAuthCallbackServer
from .token_exchange import exchange_code

if TYPE_CHECKING:
    from config.credentials import ClientCredentials

logger = logging.getLogger(__name__)


class FlowState(Enum):
    IDLE = "idle"
    AUTHORIZATION_REQUESTED = "authorization_requested"
    CALLBACK_LISTENING = "callback_listening"
    MANUAL_PROMPT = "manual_prompt"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELED = "canceled"


def parse_pasted_response(text: str) -> Tuple[str, Optional[str]]:
    """Extract (code, state) from what the user pasted in manual mode

    Accepts the full redirect URL, a bare query string, ``CODE#STATE`` or a
    bare code. ``state`` is None when the input carries none.

    Raises:
        AuthorizationDeniedError: The pasted redirect carries an OAuth error
        AuthorizationError: No code could be found
    """
    text = (text or "").strip()
    if not text:
        raise AuthorizationError("no authorization code was entered")

    if "://" in text or "code=" in text or "error=" in text:
        query = urlparse(text).query if "://" in text else text.lstrip("?")
        params = parse_qs(query)
        error = params.get("error", [None])[0]
        if error:
            raise AuthorizationDeniedError(error, params.get("error_description", [""])[0])
        code = params.get("code", [None])[0]
        if not code:
            raise AuthorizationError("no authorization code found in the pasted URL")
        return code, params.get("state", [None])[0]

    if "#" in text:
        code, _, state = text.partition("#")
        return code, state or None

    return text, None


class OAuthFlow:
    """Single run of the authorization-code grant"""

    def __init__(
        self,
        credentials: "ClientCredentials",
        manual: bool = False,
        force_consent: bool = False,
        timeout: Optional[float] = None,
        console: Optional[Console] = None,
        open_browser: Optional[Callable[[str], bool]] = None,
        input_func: Optional[Callable[[str], str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        handle_signals: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
        authorize_url: Optional[str] = None,
        token_url: Optional[str] = None,
        scopes: Optional[str] = None,
    ):
        self.credentials = credentials
        self.manual = manual
        self.force_consent = force_consent
        self.timeout = settings.LOGIN_TIMEOUT if timeout is None else timeout
        self.console = console or Console()
        self.open_browser = open_browser or webbrowser.open
        self.input_func = input_func or input
        self.cancel_event = cancel_event
        self.handle_signals = handle_signals
        self.http_client = http_client
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.scopes = scopes

        self.state = FlowState.IDLE
        self.nonce: Optional[str] = None
        self.redirect_uri = credentials.redirect_uri
        self.server: Optional[OAuthCallbackServer] = None

    def _transition(self, new_state: FlowState) -> None:
        logger.debug(f"OAuth flow: {self.state.value} -> {new_state.value}")
        self.state = new_state

    async def run(self) -> str:
        """
        Run the flow to completion.

        Returns:
            The refresh token (access tokens are not kept)

        Raises:
            AuthorizationTimeoutError: No code before the timeout
            AuthorizationCanceledError: Interrupted by the user or cancel_event
            StateMismatchError: The redirect carried a foreign state value
            AuthorizationDeniedError: The user or server refused the grant
            TokenExchangeError: The token endpoint rejected the code
        """
        if self.state != FlowState.IDLE:
            raise RuntimeError("OAuthFlow instances are single use")

        try:
            if self.manual:
                code = await self._collect_code_manually()
            else:
                code = await self._collect_code_from_callback()
            self._transition(FlowState.CODE_RECEIVED)

            self.console.print("Exchanging authorization code for tokens...")
            tokens = await exchange_code(
                code,
                self.credentials,
                self.redirect_uri,
                http_client=self.http_client,
                token_url=self.token_url,
            )
            self._transition(FlowState.TOKEN_EXCHANGED)
        except AuthorizationTimeoutError:
            self._transition(FlowState.TIMED_OUT)
            raise
        except (AuthorizationCanceledError, asyncio.CancelledError, KeyboardInterrupt):
            self._transition(FlowState.CANCELED)
            raise
        except BaseException:
            self._transition(FlowState.FAILED)
            raise

        self._transition(FlowState.SUCCESS)
        return tokens.refresh_token

    def _authorization_url(self) -> str:
        return build_authorization_url(
            self.credentials.client_id,
            self.redirect_uri,
            self.nonce,
            scopes=self.scopes,
            force_consent=self.force_consent,
            authorize_url=self.authorize_url,
        )

    async def _collect_code_from_callback(self) -> str:
        parsed = urlparse(self.credentials.redirect_uri)
        self.nonce = create_state()
        self.server = OAuthCallbackServer(
            self.nonce,
            host=parsed.hostname or "localhost",
            port=parsed.port or 0,
            path=parsed.path or "/",
        )

        try:
            # Listener is bound before the URL is shown
            port = await self.server.start()
            if not parsed.port:
                self.redirect_uri = with_port(self.credentials.redirect_uri, port)
            url = self._authorization_url()
            self._transition(FlowState.AUTHORIZATION_REQUESTED)

            self.console.print("\n[bold]Opening browser to authorize frontcli...[/bold]")
            self.console.print(f"If the browser does not open, visit:\n[cyan]{url}[/cyan]\n", soft_wrap=True)
            try:
                opened = self.open_browser(url)
            except webbrowser.Error as e:
                logger.debug(f"Could not open browser: {e}")
                opened = False
            if not opened:
                self.console.print("[yellow]Could not open browser automatically[/yellow]")

            self._transition(FlowState.CALLBACK_LISTENING)
            self.console.print(f"Waiting for the redirect on {self.redirect_uri} (Ctrl-C to cancel)...")
            result = await self._first_of(self.server.result)
            return result.code
        finally:
            await self.server.stop()

    async def _collect_code_manually(self) -> str:
        self.nonce = create_state()
        url = self._authorization_url()
        self._transition(FlowState.AUTHORIZATION_REQUESTED)

        self.console.print("\n[bold]Step 1:[/bold] Open this URL in a browser and authorize frontcli:")
        self.console.print(f"[cyan]{url}[/cyan]\n", soft_wrap=True)
        self.console.print("[bold]Step 2:[/bold] After approving, your browser is redirected to")
        self.console.print(f"  {self.redirect_uri}?code=...")
        self.console.print("  Copy the full address from the address bar, even if the page fails to load.\n")

        self._transition(FlowState.MANUAL_PROMPT)
        pasted = await self._first_of(self._read_input("Redirect URL or code: "))
        code, state = parse_pasted_response(pasted)
        if state is not None and state != self.nonce:
            logger.warning("State mismatch in pasted redirect, rejecting code")
            raise StateMismatchError()
        return code

    def _read_input(self, prompt: str) -> asyncio.Future:
        """Read one line on a daemon thread so the wait stays cancellable"""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def deliver(value: Optional[str], error: Optional[BaseException]) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(value)

        def reader() -> None:
            value, error = None, None
            try:
                value = self.input_func(prompt)
            except (EOFError, KeyboardInterrupt):
                error = AuthorizationCanceledError("no authorization code entered")
            except Exception as e:
                error = e
            try:
                loop.call_soon_threadsafe(deliver, value, error)
            except RuntimeError:
                # Event loop already closed: the flow finished without this input
                logger.debug("Discarding manual input received after the flow ended")

        threading.Thread(target=reader, name="frontcli-manual-input", daemon=True).start()
        return future

    async def _first_of(self, pending: Awaitable):
        """Wait for ``pending``, the timeout or cancellation, whichever is first"""
        cancel_event = self.cancel_event or asyncio.Event()
        result_task = asyncio.ensure_future(pending)
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        restore_signal = self._route_sigint(cancel_event)
        try:
            done, _ = await asyncio.wait(
                {result_task, cancel_task},
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            restore_signal()
            cancel_task.cancel()

        if result_task in done:
            return result_task.result()

        result_task.cancel()
        if cancel_task in done:
            logger.info("Authorization canceled by user")
            raise AuthorizationCanceledError()
        logger.info(f"Authorization timed out after {self.timeout:g}s")
        raise AuthorizationTimeoutError(self.timeout)

    def _route_sigint(self, cancel_event: asyncio.Event) -> Callable[[], None]:
        """Turn Ctrl-C into ``cancel_event`` while waiting; returns the undo"""
        if not self.handle_signals:
            return lambda: None
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows event loops and non-main threads: KeyboardInterrupt still cancels
            return lambda: None
        return lambda: loop.remove_signal_handler(signal.SIGINT)
