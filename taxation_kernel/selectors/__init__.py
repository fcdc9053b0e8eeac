"""Selectors for the taxation stores (read side)."""

from taxation_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector"]
