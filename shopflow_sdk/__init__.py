"""Shared helpers used across the shopflow packages."""
