"""
volley - concurrent HTTP request grid runner.

Fires threads x iterations requests at one endpoint, optionally randomizing
parameters per request, and reports every outcome with success/failure counts.
"""

from .exceptions import (
    ConfigError,
    CycleError,
    RequestConstructionError,
    RunnerError,
    TransportError,
    VolleyError,
)

__all__ = [
    "__version__",
    "ConfigError",
    "CycleError",
    "RequestConstructionError",
    "RunnerError",
    "TransportError",
    "VolleyError",
]

__version__ = "1.0.0"
