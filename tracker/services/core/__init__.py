"""Upstream API client and payload models."""
