"""
Kraken Backfill - Historical trade retrieval and time-bucket clustering.

This package pages through Kraken's public trade history and regroups the
stream of individual trades into ordered, fixed-width time buckets that are
handed to a callback once they are closed.
"""

__version__ = "1.0.0"
__author__ = "Kraken Backfill Team"
