"""Maintenance OS: scheduled web-quality audits for a fixed set of client sites."""
__version__ = "1.0.0"
