"""Pure domain utilities: candidate tokens, verdicts, access codes.

These modules are free of FastAPI/HTTP concerns so they can be
unit-tested and reused by both the server and the check CLI.
"""
__all__ = ["tokens", "access"]
