"""Ingestion layer.

Turns caller payloads into canonical events and writes them, together
with the index and summary updates they imply, into the store.
"""

__all__: list[str] = []
