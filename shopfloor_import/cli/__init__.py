"""Command line interface (``python -m shopfloor_import.cli``)."""
