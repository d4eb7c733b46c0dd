"""Command line entry point (``python -m req_ingest.cli``)."""
