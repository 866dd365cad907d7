"""
Detecting the operator's own version.

The version is determined only once at startup when the code is loaded.
It is used to self-identify in the API requests (the ``User-Agent`` header).
"""
import importlib.metadata

version: str | None = None

try:
    version = importlib.metadata.version('cpa-operator')
except importlib.metadata.PackageNotFoundError:
    pass  # running from a source tree without installation.
