"""
Consumption Patterns Scoring Engine

Scores per-local baseline VPC profiles against a week of aggregated sales,
by product tag and by waiter.
"""

__version__ = "1.0.0"
