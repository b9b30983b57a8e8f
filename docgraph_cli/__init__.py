"""DocGraph CLI: structure-aware documentation generation."""

__version__ = "0.1.0"
