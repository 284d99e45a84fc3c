"""
Command-line interface module for the dip accumulator.

This module provides the CLI for validating configuration files and inspecting
strategies, their positions and aggregate statistics.
"""

from .cli import main

__all__ = ["main"]
