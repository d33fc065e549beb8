"""
Background Tasks
Celery tasks for ledger maintenance.
"""
