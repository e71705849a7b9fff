"""Expiration detection, the expiration queue and its consumer."""
