"""
Competiscope Competitive Analysis Engine

Compares a user's website and social presence against a competitor:
1. Admits requests through a per-identity rate limiter and analysis lock
2. Serves fingerprinted composite results from cache when valid
3. Fans out to page-speed, backlink, traffic and social providers
4. Composes a two-sided report with derived comparison metrics
5. Filters the report according to the caller's subscription tier
"""

__version__ = "0.1.0"
