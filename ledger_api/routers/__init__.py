"""
FastAPI routers grouped by domain.

Each module exposes an APIRouter that `ledger_api.app.create_app` includes.
Handlers translate HTTP input into service calls and service errors into
status codes; business rules stay in `ledger_api.services`.
"""
