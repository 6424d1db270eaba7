"""Typesense vector store with portable metadata filters."""

__version__ = "0.1.0"
