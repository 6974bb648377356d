"""
j-- Command-Line Interface
==========================

- **jmc**: scan, parse, analyze and generate code for one j-- file

The tool is a Click-based CLI application.
"""

__all__ = ["jmc"]
