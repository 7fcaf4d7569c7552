"""
SalesTax pipeline.

Enriches CSV files of client charges with jurisdictional sales-tax amounts.
"""

__version__ = "0.1.0"
