"""
Use cases for the ledger API.

Each service orchestrates repositories to implement business rules (register,
credit a task reward, attach a referrer, issue or revoke a session token).
Routers call these services instead of touching the database directly.
"""
