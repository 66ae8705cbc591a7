"""
Core wiring.

- ports.py: Protocols the store and scheduler depend on (storage, notification sink, clock)
- state.py: AppState, the object that owns the store and the scheduler
"""
