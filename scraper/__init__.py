"""
Scraper package for the Codeforces Upsolve Tracker
Contains the browser session manager, the API client and the two scrapers
"""

from .browser import BrowserConfig, BrowserSession, BrowserSessionManager, SeleniumSession
from .base_scraper import BaseScraper
from .codeforces_api import CodeforcesAPI
from .upsolve_resolver import UpsolveResolver, compute_upsolve_indices
from .problem_extractor import ProblemExtractor

__all__ = [
    'BrowserConfig',
    'BrowserSession',
    'BrowserSessionManager',
    'SeleniumSession',
    'BaseScraper',
    'CodeforcesAPI',
    'UpsolveResolver',
    'compute_upsolve_indices',
    'ProblemExtractor',
]
