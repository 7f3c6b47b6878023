"""
The `graph` sub-package computes the dependency graph of a corpus of melange
definitions and reduces it to the view callers consume.
"""
