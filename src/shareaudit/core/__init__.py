"""
Core risk engine: types, scoring, aggregation and plan limits.
"""
