"""artcards: file-backed project/card store with a sandboxed image output pipeline."""

__version__ = "0.4.0"
