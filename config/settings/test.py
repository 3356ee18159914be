"""
With these settings, tests run faster.
"""

from .base import *  # noqa: F403
from .base import LOGGING
from .base import TEMPLATES
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="t3stOnlyK3y-0c3a1b9e5f7d2c4a6e8b0d1f3a5c7e9b2d4f6a8c0e1b3d5f7a9c",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"

# DATABASES
# ------------------------------------------------------------------------------
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
        "ATOMIC_REQUESTS": True,
    },
}

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# DEBUGGING FOR TEMPLATES
# ------------------------------------------------------------------------------
TEMPLATES[0]["OPTIONS"]["debug"] = True  # type: ignore[index]

# REALTIME
# ------------------------------------------------------------------------------
REALTIME_AUTH_TIMEOUT = 2.0

# LOGGING
# ------------------------------------------------------------------------------
# Let pytest's caplog see realtime records.
LOGGING["loggers"]["teamhub.realtime"]["propagate"] = True
