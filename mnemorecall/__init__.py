"""
mnemorecall - decay-aware memory store and recursive retrieval.
"""

__version__ = "0.1.0"
