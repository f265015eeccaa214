"""Persistence — host config reconciler and installation registry."""
