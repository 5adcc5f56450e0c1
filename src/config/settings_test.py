"""Settings used by the pytest suite.

Provides the values that production requires from the environment so the
suite runs without a ``.env`` file.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("IDENTITY_JWT_SECRET", "test-identity-secret-with-32-bytes!")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PAYMENT_GATEWAY_URL", "")

from config.settings import *  # noqa: E402,F401,F403

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "agro-orders-tests",
    }
}
