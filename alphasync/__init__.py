"""
alphasync: incremental Alpha Vantage -> PostgreSQL synchronizer.

Single-threaded batch jobs; see `alphasync.jobs.main` for the entry point.
"""

__version__ = "0.1.0"
