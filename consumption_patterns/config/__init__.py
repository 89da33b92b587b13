"""
Consumption Patterns Scoring Engine
Configuration Module
"""
from .settings import Settings, PatternSettings, get_settings

__all__ = ["Settings", "PatternSettings", "get_settings"]
