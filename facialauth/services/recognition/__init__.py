"""Recognition backends package.

Backends import their third-party model libraries at module import time, so
they are imported lazily by the service container.
"""
