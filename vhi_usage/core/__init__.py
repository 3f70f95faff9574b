"""Core helpers: configuration, schemas and billing arithmetic."""
