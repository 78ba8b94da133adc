"""
                Table Ordering Backend

Order lifecycle backend for QR-code table ordering: customers scan a
table code, check out a basket, and pay; staff track order status.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
