"""
Chainwatch - option chain monitoring for NSE and MCX.

Fetches option chains from exchange web APIs, enriches per-strike quotes
with moneyness, time value and OI rank, and flags anomalous strikes with
threshold rules.
"""

__version__ = "0.1.0"
