"""Logging and metrics for the event monitor."""
