"""Command-line tools for plansearch.

- ``python -m plansearch.cli`` -- upload, inspect, search and delete
  documents without running the HTTP server (see :mod:`plansearch.cli.documents`).
"""
