"""Core infrastructure: configuration, database, cache, auth, calendar."""
