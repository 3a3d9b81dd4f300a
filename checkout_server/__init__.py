"""Checkout pricing and multi-step workflow engine for the storefront."""

__version__ = "0.1.0"
