"""
YT-Trimmer - download, trim and serve YouTube clips.
"""

__version__ = "2.1.0"
