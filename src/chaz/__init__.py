"""Chaz: a Matrix bot that relays room conversations to LLM backends."""

from importlib.metadata import version

__version__ = version("chaz")
