"""GPT-Vis style chart render server."""

__version__ = "0.1.0"
