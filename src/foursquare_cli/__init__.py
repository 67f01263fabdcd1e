"""Foursquare CLI - fetch your check-in history from the command line."""

__version__ = "0.1.0"
