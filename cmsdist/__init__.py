"""Package provider for the CMS software distribution."""

__version__ = "0.1.0"
