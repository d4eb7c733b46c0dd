"""Requirement stores: persistence contract, in-memory and PostgreSQL."""
