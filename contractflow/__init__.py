"""Contract lifecycle, approval, signing and renewal workflow service."""

__version__ = "0.1.0"
