"""
schoolcache Package Main Entry Point

Runs the maintenance CLI when invoked as ``python -m schoolcache``.
"""

from schoolcache.cli.typer_app import run

if __name__ == "__main__":
    run()
