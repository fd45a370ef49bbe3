"""Inbound chat webhook server."""
