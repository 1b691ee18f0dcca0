"""CLI entry point and argument parsing"""

import argparse
import logging
import sys
from typing import List, Optional

import settings
from api.errors import EXIT_ERROR, EXIT_SUCCESS, FrontError, exit_code_for
from errfmt import format_error
from cli import auth_handlers
from cli.context import CLIContext
from cli.debug_setup import setup_consoles
from cli.whoami import whoami

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="frontcli", description="Command line client for Front")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    parser.add_argument("--client", default=None, help="OAuth client name (default: default)")
    parser.add_argument("--account", default=None, help="Account (email) to act as")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    auth = commands.add_parser("auth", help="Manage authentication")
    auth_commands = auth.add_subparsers(dest="auth_command", metavar="SUBCOMMAND")
    auth_commands.required = True

    setup = auth_commands.add_parser("setup", help="Configure OAuth credentials")
    setup.add_argument("client_id", help="OAuth client ID")
    setup.add_argument("--client-secret", default=None, help="OAuth client secret (for non-interactive use)")
    setup.add_argument("--client-name", default=None, help="Client name (default: default)")
    setup.add_argument(
        "--redirect-uri",
        default=settings.DEFAULT_REDIRECT_URI,
        help=f"OAuth redirect URI (default: {settings.DEFAULT_REDIRECT_URI})",
    )
    setup.set_defaults(handler=auth_handlers.setup_client)

    login = auth_commands.add_parser("login", help="Authenticate with Front")
    login.add_argument("--email", default=None, help="Email/identifier to associate with this token")
    login.add_argument("--client-name", default=None, help="Client name")
    login.add_argument("--force-consent", action="store_true", help="Force consent prompt even if already authorized")
    login.add_argument(
        "--manual",
        action="store_true",
        help="Manual authorization (paste URL instead of callback server)",
    )
    login.add_argument(
        "--timeout",
        type=float,
        default=settings.LOGIN_TIMEOUT,
        help=f"Seconds to wait for authorization (default: {settings.LOGIN_TIMEOUT:g})",
    )
    login.set_defaults(handler=auth_handlers.login)

    logout = auth_commands.add_parser("logout", help="Remove stored tokens")
    logout.add_argument("--email", default=None, help="Email/account to log out")
    logout.add_argument("--client-name", default=None, help="Client name")
    logout.add_argument("--all", action="store_true", help="Log out all accounts for this client")
    logout.set_defaults(handler=auth_handlers.logout)

    status = auth_commands.add_parser("status", help="Show authentication status")
    status.add_argument("--client-name", default=None, help="Client name")
    status.set_defaults(handler=auth_handlers.status)

    list_cmd = auth_commands.add_parser("list", help="List authenticated accounts")
    list_cmd.set_defaults(handler=auth_handlers.list_accounts)

    me = commands.add_parser("whoami", help="Show the authenticated account")
    me.set_defaults(handler=whoami)

    return parser


def run(argv: Optional[List[str]] = None, ctx: Optional[CLIContext] = None) -> int:
    """
    Parse ``argv`` and run the selected command

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    if ctx is None:
        console, err_console = setup_consoles(args.debug)
        ctx = CLIContext(console=console, err_console=err_console, debug=args.debug)

    try:
        args.handler(args, ctx)
    except FrontError as e:
        logger.debug(f"Command failed: {type(e).__name__}: {e}")
        ctx.err_console.print(format_error(e).rstrip("\n"), markup=False, highlight=False)
        return exit_code_for(e)
    except KeyboardInterrupt:
        ctx.err_console.print("\n[yellow]Interrupted by user[/yellow]")
        return EXIT_ERROR
    except Exception as e:
        logger.debug("Unexpected error", exc_info=True)
        ctx.err_console.print(format_error(e), markup=False, highlight=False)
        if ctx.debug:
            ctx.err_console.print_exception()
        return EXIT_ERROR
    return EXIT_SUCCESS


def main():
    """Entry point for the CLI"""
    sys.exit(run())


if __name__ == "__main__":
    main()
