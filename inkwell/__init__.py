"""Inkwell — AI book-writing partner service."""

__version__ = "0.1.0"
