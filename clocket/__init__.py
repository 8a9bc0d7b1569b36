"""Command line entry points for Clocket."""
