"""HTTP API for the import pipeline."""
