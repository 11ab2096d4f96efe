"""Official Website Resolver

Discovers and verifies the official website of a business record among noisy
web sources (directories, social profiles, parked domains, homonymous
companies) with a layered waterfall of strategies and a confidence model.
"""

__version__ = "0.1.0"
__description__ = "Official website discovery and verification for business records"
