"""Mood source providers."""

from .gdelt import GdeltSource
from .newsapi import NewsApiSource
from .reddit import RedditSource

__all__ = [
    "GdeltSource",
    "NewsApiSource",
    "RedditSource",
]
