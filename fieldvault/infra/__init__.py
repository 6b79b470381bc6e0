"""Persistence engine bindings."""
