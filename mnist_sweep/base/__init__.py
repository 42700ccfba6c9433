"""
Base package containing the abstract inference wrapper for trained models.
"""

from .base_model import BaseModel

__all__ = ['BaseModel']
