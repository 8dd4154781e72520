"""Ollama infrastructure package."""

from .client import OllamaRuntimeClient

__all__ = ['OllamaRuntimeClient']
