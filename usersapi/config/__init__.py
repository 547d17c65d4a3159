"""Configuration module for the users API."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
