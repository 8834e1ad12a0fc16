"""Configuration sync engine for generated storefront clients."""

__version__ = "0.1.0"
