"""
Base settings for the foodops project.
Shared between local, cloud and test profiles.
"""

from pathlib import Path
import os

from django.urls import reverse_lazy

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-q7$u0k!b2n@c9x5r#e1w^t4y8m&z3p6v0l_h2g7f9d1s5a8j4')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'accounts',
    'stock',
    'production',
    'corsheaders',
    'rest_framework',
    'drf_spectacular',
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
    'accounts.middleware.GatewayContextMiddleware',
]

ROOT_URLCONF = 'foodops.urls'

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

WSGI_APPLICATION = 'foodops.wsgi.application'


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True


# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# CORS
CORS_ALLOW_ALL_ORIGINS = True
CORS_ALLOW_HEADERS = [
    'accept',
    'authorization',
    'content-type',
    'x-user-id',
    'x-org-id',
    'x-location-id',
]


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# =============================================================================
# FOODOPS ENGINE
# =============================================================================
BATCH_NUMBER_PREFIX = os.getenv('BATCH_NUMBER_PREFIX', 'BATCH')
RECEIPT_NUMBER_PREFIX = os.getenv('RECEIPT_NUMBER_PREFIX', 'RCV')
GENERATED_SKU_PREFIX = os.getenv('GENERATED_SKU_PREFIX', 'SKU')

# Record successful GET requests in the audit log as well as mutations
AUDIT_READS = os.getenv('AUDIT_READS', 'False').lower() == 'true'


# Unfold Admin Configuration
UNFOLD = {
    "SITE_TITLE": "FoodOps Admin",
    "SITE_HEADER": "FoodOps",
    "SITE_URL": "/",
    "SITE_SYMBOL": "factory",

    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": True,
        "navigation": [
            {
                "title": "Inventory",
                "separator": True,
                "items": [
                    {
                        "title": "Inventory Records",
                        "icon": "inventory_2",
                        "link": reverse_lazy("admin:stock_inventoryrecord_changelist"),
                    },
                    {
                        "title": "Movements",
                        "icon": "swap_horiz",
                        "link": reverse_lazy("admin:stock_inventorymovement_changelist"),
                    },
                    {
                        "title": "SKUs",
                        "icon": "category",
                        "link": reverse_lazy("admin:stock_sku_changelist"),
                    },
                    {
                        "title": "Locations",
                        "icon": "warehouse",
                        "link": reverse_lazy("admin:stock_location_changelist"),
                    },
                    {
                        "title": "Purchase Receipts",
                        "icon": "local_shipping",
                        "link": reverse_lazy("admin:stock_purchasereceipt_changelist"),
                    },
                ],
            },
            {
                "title": "Production",
                "separator": True,
                "items": [
                    {
                        "title": "Batches",
                        "icon": "precision_manufacturing",
                        "link": reverse_lazy("admin:production_productionbatch_changelist"),
                    },
                    {
                        "title": "Bills of Materials",
                        "icon": "receipt_long",
                        "link": reverse_lazy("admin:production_billofmaterials_changelist"),
                    },
                    {
                        "title": "QC Checks",
                        "icon": "fact_check",
                        "link": reverse_lazy("admin:production_qccheck_changelist"),
                    },
                    {
                        "title": "Lots",
                        "icon": "qr_code_2",
                        "link": reverse_lazy("admin:production_inventorylot_changelist"),
                    },
                ],
            },
            {
                "title": "Organizations & Access",
                "separator": True,
                "items": [
                    {
                        "title": "Organizations",
                        "icon": "domain",
                        "link": reverse_lazy("admin:accounts_organization_changelist"),
                    },
                    {
                        "title": "Members",
                        "icon": "people",
                        "link": reverse_lazy("admin:accounts_member_changelist"),
                    },
                    {
                        "title": "Audit Log",
                        "icon": "history",
                        "link": reverse_lazy("admin:accounts_auditlog_changelist"),
                    },
                ],
            },
        ],
    },
}

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    # Identity comes from the gateway context headers, see accounts.middleware
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
        'rest_framework.renderers.BrowsableAPIRenderer',
    ],
}


SPECTACULAR_SETTINGS = {
    'TITLE': 'FoodOps',
    'DESCRIPTION': 'Inventory ledger and production batch API',
    'VERSION': '1.0.0',

    'SECURITY': [{'userHeader': [], 'orgHeader': []}],

    'COMPONENTS': {
        'securitySchemes': {
            'userHeader': {'type': 'apiKey', 'in': 'header', 'name': 'X-User-Id'},
            'orgHeader': {'type': 'apiKey', 'in': 'header', 'name': 'X-Org-Id'},
        }
    },
}
