"""Operation route definition."""
from src.routing.route_definition import RouteDefinition, check_sequence

__all__ = ["RouteDefinition", "check_sequence"]
