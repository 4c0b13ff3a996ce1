"""
DXBData Market Signals - Core Package

Analytics and matching engine over the real-estate transaction and rental
ledger: price alerts, flip detection and windowed market analytics.
"""

__version__ = "0.1.0"
