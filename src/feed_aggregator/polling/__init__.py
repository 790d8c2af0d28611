"""Polling: tier backoff, per-feed ingestion and the periodic scheduler."""
