"""Installer core — everything behind the host-services port."""
