"""
YouTube Channel Discovery Subsystem

Finds YouTube channels that look like commercial or partnership targets for a
crypto exchange: templated keyword searches, quota-aware caching of search and
metadata results, keyword evidence extraction and weighted channel scoring.
"""

__version__ = "0.1.0"
