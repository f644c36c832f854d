"""Canonical PIX gateway over Brazilian bank APIs."""

__version__ = "0.1.0"
