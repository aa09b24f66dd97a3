"""User interface package for SevaSync"""

from .interface import (
    CommandInterface, StatusDisplay, ErrorDisplay, ConflictPrompt
)

__all__ = [
    'CommandInterface', 'StatusDisplay', 'ErrorDisplay', 'ConflictPrompt'
]
