"""
ViiRaa connector.

Native-side services for the ViiRaa app: session ownership, the embedded
dashboard session bridge, and the Junction (Vital) health data link.
"""

__version__ = "0.3.0"

from .app import Application, build_application
from .config import Settings, get_settings

__all__ = [
    "Application",
    "build_application",
    "Settings",
    "get_settings",
    "__version__",
]
