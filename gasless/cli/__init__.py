"""Command line interface for the gasless flows."""
