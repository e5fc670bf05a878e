"""Command-line interface for the chart render server."""
