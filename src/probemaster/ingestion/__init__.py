"""Ingestion layer.

This package contains the line grammar (normalizer, reading and
announcement parsers), wire translation, and the adapters that receive
lines from the poll endpoint and the byte transport.
"""

__all__: list[str] = []
