"""
Package entry point.

Allows running the service via:

    python -m mptnotify run

This simply forwards execution to mptnotify.cli.main().
"""

from mptnotify.cli import main

if __name__ == "__main__":
    main()
