"""Nearby vessel discovery."""
