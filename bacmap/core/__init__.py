"""Logging setup shared by the CLI and services."""
