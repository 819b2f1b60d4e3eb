"""
Multi-account email gateway speaking JSON-RPC over stdio.
"""

__version__ = "0.1.0"
