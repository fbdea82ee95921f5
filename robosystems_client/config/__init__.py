"""
Centralized configuration package for the RoboSystems client.

This package provides a single source of truth for environment settings,
constants and logging configuration.
"""

from .env import EnvConfig, env

__all__ = [
  "EnvConfig",
  "env",
]
