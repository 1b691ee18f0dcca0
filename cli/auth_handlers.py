"""Handlers for the `frontcli auth` subcommands"""

import asyncio
import logging
import sys
from typing import List, Optional, Tuple

from pydantic import ValidationError
from rich.prompt import Prompt
from rich.table import Table

from api.client import FrontClient
from api.errors import FrontError, UsageError
from api.token_source import AccessTokenSource
from config.credentials import (
    ClientCredentials,
    client_credentials_exist,
    normalize_client_name,
    read_client_credentials,
    write_client_credentials,
)
from oauth.flow import OAuthFlow
from utils.storage import Token

from cli.context import CLIContext

logger = logging.getLogger(__name__)


def resolve_client_name(args) -> str:
    """--client-name on the subcommand wins over the global --client"""
    return normalize_client_name(getattr(args, "client_name", None) or getattr(args, "client", None))


def _since(token: Token) -> str:
    return token.created_at.strftime("%Y-%m-%d")


def setup_client(args, ctx: CLIContext) -> None:
    """Store OAuth client credentials for a client name"""
    secret = args.client_secret
    if not secret:
        if not sys.stdin.isatty():
            raise UsageError("client secret required: use --client-secret flag or run interactively")
        secret = Prompt.ask("Client Secret", password=True, console=ctx.console)

    try:
        credentials = ClientCredentials(
            client_name=resolve_client_name(args),
            client_id=args.client_id,
            client_secret=secret,
            redirect_uri=args.redirect_uri,
        )
    except ValidationError as e:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise UsageError(f"invalid client credentials: {errors}") from e

    path = write_client_credentials(credentials)
    ctx.console.print(f"Credentials saved to {path}")
    ctx.console.print("Run 'frontcli auth login' to authenticate.")


def login(args, ctx: CLIContext) -> None:
    """Run the OAuth flow and store the refresh token"""
    asyncio.run(_login(args, ctx))


async def _login(args, ctx: CLIContext) -> None:
    client_name = resolve_client_name(args)
    credentials = read_client_credentials(client_name)

    flow = OAuthFlow(
        credentials,
        manual=args.manual,
        force_consent=args.force_consent,
        timeout=args.timeout,
        console=ctx.console,
        http_client=ctx.http_client,
    )
    refresh_token = await flow.run()

    account = args.email or getattr(args, "account", None)
    if not account:
        account, refresh_token = await fetch_identity(credentials, refresh_token, ctx)

    ctx.get_store().set_token(
        client_name,
        account,
        Token(client=client_name, account=account, refresh_token=refresh_token),
    )
    ctx.console.print(f"[green]Successfully authenticated as {account}[/green]")


async def fetch_identity(
    credentials: ClientCredentials,
    refresh_token: str,
    ctx: CLIContext,
) -> Tuple[str, str]:
    """
    Work out which account a fresh refresh token belongs to.

    Tries the email on /me, then the only teammate of the account, then the
    account ID.

    Returns:
        (account identifier, refresh token); the token differs from the input
        when it was rotated while calling the API

    Raises:
        FrontError: /me failed; the error keeps its classification
        UsageError: Several teammates make the choice ambiguous
    """
    source = AccessTokenSource.from_refresh_token(credentials, refresh_token, http_client=ctx.http_client)
    async with FrontClient(source, http_client=ctx.http_client) as client:
        try:
            me = await client.me() or {}
        except FrontError:
            ctx.err_console.print("Could not determine your identity. Use --email to specify your email")
            raise

        identity = me.get("email")
        if not identity:
            try:
                teammates = await client.list_teammates()
            except FrontError as e:
                logger.debug(f"Listing teammates failed, falling back to account id: {e}")
                teammates = []
            identity = _identity_from_teammates(teammates, ctx) or me.get("id")

    if not identity:
        raise UsageError("could not determine account identity. Use --email to specify your email")
    return identity, source.load_refresh_token()


def _identity_from_teammates(teammates: List[dict], ctx: CLIContext) -> Optional[str]:
    if len(teammates) == 1:
        return teammates[0].get("email")
    if len(teammates) > 1:
        ctx.err_console.print("Multiple teammates found. Please re-run with --email flag:")
        for teammate in teammates:
            name = f"{teammate.get('first_name', '')} {teammate.get('last_name', '')}".strip()
            ctx.err_console.print(f"  - {teammate.get('email')} ({name})", highlight=False)
        raise UsageError("multiple teammates - specify --email")
    return None


def logout(args, ctx: CLIContext) -> None:
    """Remove stored tokens for one account or all accounts of a client"""
    client_name = resolve_client_name(args)
    store = ctx.get_store()

    if args.all:
        count = 0
        for token in store.tokens_for_client(client_name):
            try:
                store.delete_token(token.client, token.account)
            except FrontError as e:
                ctx.err_console.print(f"[yellow]Warning:[/yellow] failed to remove token for {token.account}: {e}")
            else:
                count += 1
        ctx.console.print(f"Logged out {count} account(s)")
        return

    account = store.resolve_account(client_name, args.email or getattr(args, "account", None))
    store.delete_token(client_name, account)
    ctx.console.print(f"Logged out {account}")


def status(args, ctx: CLIContext) -> None:
    """Show whether a client is configured and which accounts are logged in"""
    client_name = resolve_client_name(args)
    if not client_credentials_exist(client_name):
        ctx.console.print("Not configured")
        ctx.console.print("Run 'frontcli auth setup <client_id>' to configure.")
        return

    tokens = sorted(ctx.get_store().tokens_for_client(client_name), key=lambda t: t.account)
    if not tokens:
        ctx.console.print("OAuth credentials configured but not authenticated.")
        ctx.console.print("Run 'frontcli auth login' to authenticate.")
        return

    ctx.console.print(f"Authenticated: {len(tokens)} account(s)")
    for token in tokens:
        ctx.console.print(f"  - {token.account} (since {_since(token)})", highlight=False)


def list_accounts(args, ctx: CLIContext) -> None:
    """List every stored account across clients"""
    tokens = sorted(ctx.get_store().list_tokens(), key=lambda t: (t.client, t.account))
    if not tokens:
        ctx.console.print("No authenticated accounts.")
        return

    table = Table(title="Authenticated accounts")
    table.add_column("Account", style="cyan")
    table.add_column("Client")
    table.add_column("Since")
    for token in tokens:
        table.add_row(token.account, token.client, _since(token))
    ctx.console.print(table)
