"""
ETL (Extract, Transform, Load) package for the SalesTax pipeline.

This package contains modules for parsing charge spreadsheets, looking up
jurisdictional rates, computing tax amounts and writing the output reports.
"""
