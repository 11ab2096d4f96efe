"""Core data model, configuration and error types."""
