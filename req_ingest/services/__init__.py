"""Mapping, validation, wizards, batch commit and grid editing services."""
