"""
Shared plumbing for the API: settings, logging setup and the asyncpg pool.

Import-specific SQL and pipeline logic stay in `imports/`.
"""
