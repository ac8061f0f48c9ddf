"""Craftshop admin backend: access-control core and account API."""

__version__ = "0.1.0"
