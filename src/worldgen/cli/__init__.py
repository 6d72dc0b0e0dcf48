"""
Command-line interface for worldfile generation.

Subcommands:
    generate: Build a worldfile from the configured template and cell table
    inspect: Report the level hierarchy and aggregation plan without writing
"""
