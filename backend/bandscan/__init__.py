"""Cigar band identification service."""

__version__ = "1.0.0"
