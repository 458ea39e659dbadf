"""CrudForge: REST APIs generated from model metadata."""

__version__ = "0.1.0"
