"""
Core utilities shared across the ledger API.

Configuration, structured logging, password/token security helpers and the
per-IP rate limiter live here; services and routers depend on these instead of
reading the environment or configuring handlers themselves.
"""
