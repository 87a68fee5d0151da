"""Configuration package: constants and pydantic settings."""
