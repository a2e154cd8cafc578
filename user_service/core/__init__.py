"""Core domain: settings, exceptions, models and repositories."""
