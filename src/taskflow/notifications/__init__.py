"""
Notification subsystem.

- sink.py: permission states and concrete notification sinks
- reminder_scheduler.py: arms cancellable reminder timers relative to task due moments
"""
