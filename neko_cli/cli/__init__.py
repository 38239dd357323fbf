"""
Command-Line Interface Layer.

This package contains the typer application, the rich formatters, and the
live progress display bound to the download state tracker.
"""
