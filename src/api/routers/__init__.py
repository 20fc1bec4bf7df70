"""Router module exports."""
from src.api.routers import auth, changes, dashboard, routes, work_orders

__all__ = ["auth", "changes", "dashboard", "routes", "work_orders"]
