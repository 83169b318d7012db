"""Streaming catalog module search: gateway and consumer."""
