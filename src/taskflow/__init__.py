"""
taskflow: local task and appointment manager core.

Subpackages:
- storage: durable key-value adapters
- tasks: data model, EntityStore, calendar projection
- notifications: notification sinks and the reminder scheduler
- core: ports (interfaces) and AppState

Use bootstrap.create_app_state() to wire everything together.
"""
