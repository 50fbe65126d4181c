"""
Background task package.

Queue executors (run in-process by the task supervisor):
- parse_tasks: Resume file -> candidate
- match_tasks: Candidates x job posting -> match results
- generation_tasks: Job title/department -> description and requirements

Celery tasks (run by the worker):
- maintenance_tasks: Stale task recovery
"""

from app.tasks import maintenance_tasks

__all__ = ["maintenance_tasks"]
