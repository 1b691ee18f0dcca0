"""
Local OAuth callback server
"""
import asyncio
import html
import logging
import socket
from typing import NamedTuple, Optional

from aiohttp import web

from api.errors import (
    AuthorizationDeniedError,
    AuthorizationError,
    StateMismatchError,
)

logger = logging.getLogger(__name__)

SUCCESS_PAGE = """
<html>
    <head><title>frontcli</title></head>
    <body>
        <h1>Authentication Successful!</h1>
        <p>You can now close this window and return to the terminal.</p>
        <script>
            setTimeout(function() {
                window.close();
            }, 2000);
        </script>
    </body>
</html>
"""

FAILURE_PAGE = """
<html>
    <head><title>frontcli</title></head>
    <body>
        <h1>Authentication Failed</h1>
        <p>{message}</p>
        <p>You can close this window and check the terminal.</p>
    </body>
</html>
"""


class CallbackResult(NamedTuple):
    """OAuth callback result"""
    code: str
    state: str


def _bind_address(host: str) -> str:
    # Browsers reach "localhost" over IPv4 loopback at least
    if host in ("localhost", ""):
        return "127.0.0.1"
    return host


class OAuthCallbackServer:
    """Loopback HTTP listener that receives the authorization redirect

    ``start()`` binds the socket, so the port is known (and already accepting
    connections) before the authorization URL is shown to the user. The
    outcome is delivered through ``result``: a future resolved with a
    ``CallbackResult`` or failed with ``StateMismatchError`` /
    ``AuthorizationDeniedError``.
    """

    def __init__(self, expected_state: str, host: str = "localhost", port: int = 0, path: str = "/callback"):
        self.expected_state = expected_state
        self.host = host
        self.port = port
        self.path = path or "/"
        self.result: Optional[asyncio.Future] = None
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self._sock: Optional[socket.socket] = None
        self._stopped = False

        self.app.router.add_get(self.path, self._handle_callback)

    async def _handle_callback(self, request: web.Request) -> web.Response:
        """Handle OAuth callback request"""
        code = request.query.get("code")
        state = request.query.get("state")
        error = request.query.get("error")

        if error:
            description = request.query.get("error_description", "")
            logger.warning(f"Authorization server returned error: {error}")
            self._fail(AuthorizationDeniedError(error, description))
            message = html.escape(f"Error: {error}. {description}".strip())
            return web.Response(text=FAILURE_PAGE.format(message=message), content_type="text/html", status=400)

        if not code or not state:
            # Stray request (favicon, reload without query); keep waiting
            return web.Response(text="Missing code or state parameter", status=400)

        if state != self.expected_state:
            logger.warning("State mismatch in OAuth callback, rejecting code")
            self._fail(StateMismatchError())
            return web.Response(
                text=FAILURE_PAGE.format(message="Invalid state parameter."),
                content_type="text/html",
                status=400,
            )

        if self.result is not None and not self.result.done():
            self.result.set_result(CallbackResult(code=code, state=state))
            logger.debug("Received authorization code on callback listener")

        return web.Response(text=SUCCESS_PAGE, content_type="text/html")

    def _fail(self, error: Exception) -> None:
        if self.result is not None and not self.result.done():
            self.result.set_exception(error)

    async def start(self) -> int:
        """Bind and start serving

        Returns:
            The bound port (useful when constructed with port 0)

        Raises:
            AuthorizationError: The address cannot be bound
        """
        loop = asyncio.get_running_loop()
        self.result = loop.create_future()

        address = _bind_address(self.host)
        family = socket.AF_INET6 if ":" in address else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((address, self.port))
            sock.listen(16)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise AuthorizationError(
                f"cannot start callback listener on {self.host}:{self.port}: {e}"
            ) from e
        self._sock = sock
        self.port = sock.getsockname()[1]

        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()
        site = web.SockSite(self.runner, sock)
        await site.start()
        logger.debug(f"OAuth callback server listening on {address}:{self.port}{self.path}")
        return self.port

    async def stop(self) -> None:
        """Stop the callback server; safe to call more than once"""
        if self._stopped:
            return
        self._stopped = True
        try:
            if self.runner is not None:
                await self.runner.cleanup()
        finally:
            if self._sock is not None:
                self._sock.close()
            if self.result is not None and not self.result.done():
                self.result.cancel()
            logger.debug("OAuth callback server stopped")

    @property
    def stopped(self) -> bool:
        return self._stopped
