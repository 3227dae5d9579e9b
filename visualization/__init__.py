"""Visualization Package - Interactive plotly plots written as HTML"""

from .interactive import InteractivePlotter

__all__ = ['InteractivePlotter']
