import tempfile

from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

MEDIA_ROOT = tempfile.mkdtemp(prefix='storefront-media-')
PRIVATE_DOWNLOADS_ROOT = tempfile.mkdtemp(prefix='storefront-downloads-')

PUBLIC_BASE_URL = 'https://shop.example.com'
DOWNLOAD_SIGNING_SECRET = 'test-download-secret'

PAYPAL_CLIENT_ID = 'paypal-client'
PAYPAL_CLIENT_SECRET = 'paypal-secret'
PAYPAL_BASE_URL = 'https://api-m.sandbox.paypal.com'
STRIPE_SECRET_KEY = 'sk_test_123'
STRIPE_WEBHOOK_SECRET = 'whsec_test'

LOGGING = {'version': 1, 'disable_existing_loggers': False}
