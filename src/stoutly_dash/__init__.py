"""Backend functions and chart cards for the Stoutly analytics dashboard."""

__version__ = "0.1.0"
