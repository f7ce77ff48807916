"""
Grocery Price Analysis
======================
Simulation, cleaning, validation, exploration and Bayesian modelling of
Canadian grocery store prices.

Subpackages:
    data_pipeline - Simulate, clean and validate price tables
    analysis      - Exploratory summaries of the cleaned table
    modeling      - Bayesian regression of current price
"""

__version__ = '0.1.0'
