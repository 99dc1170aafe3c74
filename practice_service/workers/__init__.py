"""Background workers."""

from .jobs_fetch import JobsFetchWorker

__all__ = ["JobsFetchWorker"]
