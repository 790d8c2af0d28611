"""Core infrastructure: exceptions, logging, database, cache and filters."""
