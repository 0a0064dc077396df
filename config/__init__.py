"""Configuration module for the RAG support assistant."""

from .settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
