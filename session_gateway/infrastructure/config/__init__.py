"""
Infrastructure Configuration - Unified Configuration System
==========================================================
Single source of truth for all application configuration.

- AppSettings is the single source of truth
- No singleton patterns or service locators
- Settings created once in the app factory (composition root)
"""

from .settings import AppSettings

__all__ = ['AppSettings']
