"""Async client library and CLI for the Datto RMM REST API."""

__version__ = "0.1.0"
