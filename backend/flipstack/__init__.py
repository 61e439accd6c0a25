"""flipstack: commit-reveal wagers settled with oracle randomness."""

__version__ = "0.1.0"
__author__ = "flipstack Team"

__all__ = ["__version__", "__author__"]
