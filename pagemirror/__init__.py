"""
pagemirror - a fetch-and-rewrite web mirror
"""

__version__ = "1.0.0"
