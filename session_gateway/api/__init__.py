"""
HTTP layer - thin FastAPI surface over the lifecycle orchestrator
"""

from .server import create_app

__all__ = ['create_app']
