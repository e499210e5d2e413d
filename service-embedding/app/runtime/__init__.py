"""Runtime state for the embedding function.

- ``context``: the process-wide ``ModelContext`` and its load lifecycle.
- ``metrics``: service-local metrics facade.
"""
