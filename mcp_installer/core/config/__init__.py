"""Installer settings."""
