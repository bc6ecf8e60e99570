"""
Persistence adapters.

`base` declares the repository protocols the services depend on;
`sql_repository` implements them on SQLAlchemy. Tests substitute in-memory
doubles that satisfy the same protocols.
"""
