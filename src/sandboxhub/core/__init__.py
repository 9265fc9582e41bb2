"""Core domain: models, errors, allocation."""
