"""Content Co-Pilot: scored content suggestions and automated workflow rules."""

__version__ = "0.1.0"
