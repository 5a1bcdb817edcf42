"""editionctl — edition sequencing and certification engine."""

__version__ = "0.3.0"
