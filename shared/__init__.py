"""Shared helpers for logging and terminal output."""
