"""Command line tools package."""
