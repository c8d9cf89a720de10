"""
Tax Kernel

Domain primitives for GST and TDS computation:
- Money with explicit, two-place rounding
- Statutory identifier validation (GSTIN, PAN, TAN, state codes)
- Financial-year, quarter and return-period arithmetic
- Typed exceptions and structured logging
"""

__version__ = "0.1.0"
