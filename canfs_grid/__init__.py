"""Headless view models for the back-office editable grids and FNA forms."""

__version__ = "0.1.0"
