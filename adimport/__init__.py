"""Chained month-by-month ad data import service"""

__version__ = "1.0.0"
