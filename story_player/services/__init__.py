"""
Clients for the story backend.
"""

from .api import AsyncStoryApi, CancelSignal, StoryApiClient

__all__ = ["AsyncStoryApi", "CancelSignal", "StoryApiClient"]
