"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Appointment, User, AppSettings) and the persisted document
- task_store.py: EntityStore, the authoritative store with mutations and derived queries
- calendar.py: read-only calendar projection over tasks and appointments
"""
