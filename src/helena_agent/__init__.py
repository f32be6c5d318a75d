"""Helena agent package."""

from .config import HelenaSettings
from .service import HelenaDependencies, HelenaRequest, HelenaResponse, run_helena_agent

__all__ = [
    "HelenaDependencies",
    "HelenaRequest",
    "HelenaResponse",
    "HelenaSettings",
    "run_helena_agent",
]
