"""Infrastructure adapters: messaging, database, logging and metrics."""
