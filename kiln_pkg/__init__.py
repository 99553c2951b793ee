"""
Kiln - an incremental static site builder.
"""

__version__ = '1.0.0'

from .builder import SiteBuilder
from .settings import KilnSettings

__all__ = ['SiteBuilder', 'KilnSettings', '__version__']
