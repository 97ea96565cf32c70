"""
Crusty Command-Line Interface
=============================

This package provides the ``crustyc`` command-line tool, which translates
Crusty source files to Rust and optionally builds them with rustc.

The tool is a Click-based CLI application with help text and error
reporting that shows the offending source line.
"""

__all__ = ["crustyc"]
