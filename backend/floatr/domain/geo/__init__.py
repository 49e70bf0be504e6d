"""Geospatial primitives and the spatial index used by discovery and zone checks."""
