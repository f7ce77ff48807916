"""
Analysis Module
===============
Exploratory summaries of the cleaned price table.
"""

from .exploratory import ExploratoryAnalysis

__all__ = ['ExploratoryAnalysis']
