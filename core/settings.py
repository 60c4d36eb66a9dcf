from corsheaders.defaults import default_headers
from environs import Env
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

env = Env()
env.read_env(BASE_DIR / '.env')

APP_ENV = env.str('APP_ENV', 'local')

SECRET_KEY = env.str('APP_SECRET_KEY', 'change-me')

DEBUG = APP_ENV != 'production'

ALLOWED_HOSTS = env.list('ALLOWED_HOSTS', default=['*'])

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'corsheaders',
    'rest_framework',
    'x402gate',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

ASGI_APPLICATION = 'core.asgi.application'


# SQLite by default (single-file embedded store); any Django backend works.
DATABASE_ENGINE = env.str('DATABASE_ENGINE', 'django.db.backends.sqlite3')

if DATABASE_ENGINE.endswith('sqlite3'):
    DATABASES = {
        'default': {
            'ENGINE': DATABASE_ENGINE,
            'NAME': env.str('DATABASE_NAME', str(BASE_DIR / 'payments.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DATABASE_ENGINE,
            'NAME': env.str('PGSQL_DATABASE', 'x402_payment_gate'),
            'USER': env.str('PGSQL_USER', 'postgres'),
            'PASSWORD': env.str('PGSQL_PASSWORD', 'mysecretpassword'),
            'HOST': env.str('PGSQL_HOST', 'localhost'),
            'PORT': env.int('PGSQL_PORT', 5432),
        }
    }


AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]


LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True


STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'static'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [],
    'UNAUTHENTICATED_USER': None,
}

# Browser clients send payment proofs cross-origin and read the offer header.
CORS_ALLOW_ALL_ORIGINS = env.bool('CORS_ALLOW_ALL_ORIGINS', True)
CORS_ALLOW_HEADERS = (
    *default_headers,
    'payment-tx',
    'payment-signature',
)
CORS_EXPOSE_HEADERS = ['PAYMENT-REQUIRED']

X402_PAY_TO = env.str('X402_PAY_TO', '0xAA31F97BE2c7f90Ff2cf3b7eD44855E750CEF81f')
X402_NETWORK = env.str('X402_NETWORK', 'base')
X402_CHAIN_ID = env.int('X402_CHAIN_ID', None)
X402_RPC_URL = env.str('X402_RPC_URL', 'https://mainnet.base.org')
X402_USDC_CONTRACT = env.str(
    'X402_USDC_CONTRACT', '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913')
X402_TOKEN_NAME = env.str('X402_TOKEN_NAME', 'USD Coin')
X402_TOKEN_VERSION = env.str('X402_TOKEN_VERSION', '2')
X402_TOKEN_DECIMALS = env.int('X402_TOKEN_DECIMALS', 6)
X402_RPC_TIMEOUT_SECONDS = env.float('X402_RPC_TIMEOUT_SECONDS', 10.0)
X402_MAX_TIMEOUT_SECONDS = env.int('X402_MAX_TIMEOUT_SECONDS', 300)

# Resource path -> price in the asset's smallest unit (USDC has 6 decimals).
X402_SERVICES = {
    '/api/japanese-news': {
        'price': '50000000',
        'price_usd': 50,
        'description': 'Japanese News Learning Platform - Full dataset access',
    },
    '/api/web-scraper': {
        'price': '30000000',
        'price_usd': 30,
        'description': 'Custom Web Scraper - One-time crawl job',
    },
    '/api/ai-analysis': {
        'price': '20000000',
        'price_usd': 20,
        'description': 'AI Data Analysis - Single dataset',
    },
    '/api/reverse-engineering': {
        'price': '100000000',
        'price_usd': 100,
        'description': 'Product Reverse Engineering - Complete analysis',
    },
}
