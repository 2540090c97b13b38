"""Sequential chapter image downloader for comick.io."""

__version__ = "0.3.0"
