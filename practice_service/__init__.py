"""
Practice service.

Coding practice sheets, a global problem catalogue, per-user progress,
announcements and a tech jobs board behind one FastAPI application.
"""

__version__ = "1.0.0"
