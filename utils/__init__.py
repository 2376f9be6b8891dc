"""Shared helpers for the assistant client."""
