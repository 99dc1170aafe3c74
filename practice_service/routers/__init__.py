"""
API routers for practice service endpoints.
"""

from . import announcements, health, jobs, problems, progress, sheets

__all__ = ["announcements", "health", "jobs", "problems", "progress", "sheets"]
