"""
Test settings - Use SQLite for testing instead of production PostgreSQL.

Set TEST_DATABASE=postgres to run against the DB_* database from the main
settings; the concurrent issue key tests only run there.
"""
from decouple import config

from trackdesk.settings import *  # noqa: F401,F403

if config('TEST_DATABASE', default='sqlite') != 'postgres':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',
        }
    }


class DisableMigrations:
    """Build test tables straight from the models."""

    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None

MIGRATION_MODULES = DisableMigrations()

# Faster password hashing for tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

DEBUG = False

ALLOWED_HOSTS = ['*']

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

GLOBAL_ISSUE_KEY_PREFIX = 'SUP'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'level': 'WARNING',
            'class': 'logging.StreamHandler',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
}
