"""
Statement formatting package for the Codeforces Upsolve Tracker
Turns scraped statement text into display-ready HTML
"""

from .statement_formatter import (
    format_description,
    format_examples,
    format_markup,
    render_math,
)

__all__ = [
    'format_description',
    'format_examples',
    'format_markup',
    'render_math',
]
