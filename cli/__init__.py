"""CLI package for frontcli

Argument parsing lives in ``cli.main``; each command group has its own
handler module.
"""
