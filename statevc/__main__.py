"""
Entry point for running statevc as a module: python -m statevc
"""

from statevc.cli.commands import app

if __name__ == "__main__":
    app()
