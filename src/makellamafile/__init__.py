"""
makellamafile: turn model weight files into self-contained llamafile executables.

A llamafile is an executable stub followed by the model bytes. This package
builds them, resolves where they go, and wires up the command-line tool.
"""

__version__ = "1.0.0"
