"""Ambient infrastructure shared by every pinchgate component.

- ``config``: environment-driven settings.
- ``errors``: the error taxonomy surfaced by dispatch, queue and gateway calls.
- ``logging_config``: process logging setup used by the CLI entry point.
- ``monitoring``: optional Logfire tracing.
"""
