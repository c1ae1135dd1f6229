"""magswipe - decode magnetic stripe swipes captured through a sound card."""

__version__ = "0.1.0"
