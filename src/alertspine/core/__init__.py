"""Core primitives: errors, logging, configuration."""
