"""
Utility module for PetShop Sync
"""

from .custom_logger import configure_logging

__all__ = [
    "configure_logging",
]
