"""Data layer - schemas and validation."""
