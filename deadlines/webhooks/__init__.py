"""Inbound webhooks: aiohttp server and handler registry."""
