"""Configuration for the assistant client."""
