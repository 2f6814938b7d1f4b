"""
Shared test configuration.
"""

import os

# The app reads settings at import; keep the sign-in rate limit out of the way of API tests
os.environ.setdefault("RATE_LIMIT_MAX_REQUESTS", "1000")
os.environ.setdefault("ENVIRONMENT", "test")
