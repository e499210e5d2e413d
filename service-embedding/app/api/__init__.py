"""API subpackage for the embedding function.

- ``handler``: transport-independent ``RequestHandler`` (validation, error
  mapping, serialization)
- ``routes``: FastAPI router for the local server (``/embed``, ``/models``)
"""
