"""Learning portal: quiz attempt engine and lesson progression."""

__version__ = "0.1.0"
