"""IDL-driven command line client for NSSA programs."""

__all__ = ["__version__"]

__version__ = "0.1.0"
