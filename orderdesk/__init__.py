"""
OrderDesk: order lifecycle engine with live merchant and consumer streams.
"""

__version__ = "0.1.0"
