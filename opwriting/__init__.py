"""Command-line tools to add, find and publish posts kept on Git branches of a writing repository."""

__version__ = "0.1.0"
__all__ = ["__version__"]