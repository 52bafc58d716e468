"""
Clustering of Danish municipalities by cultural activity participation.
"""

__version__ = "0.1.0"
