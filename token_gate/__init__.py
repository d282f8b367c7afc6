"""Free-credential gate for OpenAI-compatible proxy routes.

Exposes the package version; the app lives in `token_gate.main`.
"""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("token-gate")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
