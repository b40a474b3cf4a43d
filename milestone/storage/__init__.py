"""Persistence: connection pool and schema migrations."""
