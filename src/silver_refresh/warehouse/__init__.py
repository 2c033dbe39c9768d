"""
PostgreSQL access: connection pool, bronze snapshots and silver extents.
"""
