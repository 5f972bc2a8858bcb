"""
Transfer-cam storage module.

Persists the frozen feature extractor between runs.
"""

from .model_cache import ModelCache

__all__ = ['ModelCache']
