"""Infrastructure layer for external systems.

Currently this is the database layer: the shard manager that owns one async
engine per configured PostgreSQL shard and profiles the statements each
request runs.
"""
