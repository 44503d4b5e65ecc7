"""
Packaging utilities for makellamafile.

This subpackage is responsible for combining an executable stub with model
weights into a single llamafile under OUTPUT_DIR/<name>/ and for keeping a
small registry of what has been packaged there.
"""
