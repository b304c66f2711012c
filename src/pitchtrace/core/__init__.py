"""Configuration, errors, persistence and media access."""
