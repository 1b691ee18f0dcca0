"""`frontcli whoami`: show the account behind the stored token"""

import asyncio
import logging

from api.client import FrontClient
from api.errors import FrontError
from config.credentials import read_client_credentials

from cli.auth_handlers import resolve_client_name
from cli.context import CLIContext

logger = logging.getLogger(__name__)


def whoami(args, ctx: CLIContext) -> None:
    asyncio.run(_whoami(args, ctx))


async def _whoami(args, ctx: CLIContext) -> None:
    client_name = resolve_client_name(args)
    credentials = read_client_credentials(client_name)
    store = ctx.get_store()
    account = store.resolve_account(client_name, args.account)

    async with FrontClient.for_account(credentials, store, account, http_client=ctx.http_client) as client:
        me = await client.me() or {}

        teammate = None
        try:
            for candidate in await client.list_teammates():
                if candidate.get("email") == account:
                    teammate = candidate
                    break
        except FrontError as e:
            # Teammate details are optional; /me already succeeded
            logger.debug(f"Could not list teammates: {e}")

    ctx.console.print(f"Account:   {me.get('id', '')}", highlight=False)
    if teammate is not None:
        name = f"{teammate.get('first_name', '')} {teammate.get('last_name', '')}".strip()
        ctx.console.print(f"Teammate:  {teammate.get('id', '')}", highlight=False)
        ctx.console.print(f"Email:     {teammate.get('email', '')}", highlight=False)
        ctx.console.print(f"Username:  {teammate.get('username', '')}", highlight=False)
        ctx.console.print(f"Name:      {name}", highlight=False)
        ctx.console.print(f"Admin:     {'yes' if teammate.get('is_admin') else 'no'}", highlight=False)
    else:
        ctx.console.print(f"Email:     {account} (stored)", highlight=False)
