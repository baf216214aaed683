"""Configuration, logging, tracing and shared constants."""
