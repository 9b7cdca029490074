"""
API v1 routers.
"""

from src.api.v1 import analytics, health, issues, projects, review

__all__ = ["analytics", "health", "issues", "projects", "review"]
