"""Patient queue application.

This package holds the priority scoring and ranking engine for hospital
department queues, the status lifecycle built on top of it, and the thin
store, notification and HTTP adapters that connect the engine to Django.
"""
