"""Cosmos Tool - query Azure Cosmos DB containers from the command line."""

from cosmos_tool.__about__ import __version__

__all__ = ["__version__"]
