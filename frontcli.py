"""frontcli entry point

Equivalent to the installed ``frontcli`` script: ``python frontcli.py auth login``.
"""

from cli.main import main

if __name__ == "__main__":
    main()
