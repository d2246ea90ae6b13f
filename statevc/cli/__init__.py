"""Command-line interface for statevc."""
