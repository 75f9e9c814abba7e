"""Shared services: money helpers and notification sinks."""
