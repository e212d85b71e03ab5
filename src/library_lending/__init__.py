"""Library lending engine: the book issue, return and fine lifecycle."""

__version__ = "0.1.0"
