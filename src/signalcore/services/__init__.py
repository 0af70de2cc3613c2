"""Matching, zoning and geospatial services."""
