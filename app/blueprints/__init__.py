"""
Team Resource Planner
Blueprint registry.

Each module defines one Blueprint under /api/v1/; create_app() registers them.
"""
