"""
Analysis Package

Exploratory statistics of the features of a labeled dataset.
"""

from .statistical import (
    GroupComparison,
    GroupTest,
    MannWhitneyU,
    WelchTTest,
    GROUP_TESTS,
    StatisticalAnalyzer
)

__all__ = [
    'GroupComparison',
    'GroupTest',
    'MannWhitneyU',
    'WelchTTest',
    'GROUP_TESTS',
    'StatisticalAnalyzer',
]
