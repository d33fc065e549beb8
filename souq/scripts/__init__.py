"""
Scripts
Command-line entry points.
"""
