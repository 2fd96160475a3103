"""Storefront order service: checkout, order lifecycle and order history."""

__version__ = "1.0.0"
