"""Connectors for the remote services the harvester talks to."""
