# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Environment-based configuration for the salon sync core
"""
import os

# Environment Detection
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')
DEBUG = ENVIRONMENT == 'development'

# CRM API Configuration
API_BASE_URL = os.environ.get('API_BASE_URL', "http://localhost:5000/api").rstrip('/')
API_TOKEN = os.environ.get('API_TOKEN', '')
DEFAULT_BRANCH_ID = os.environ.get('DEFAULT_BRANCH_ID', '')

# Business timezone used to build daily fetch windows
BUSINESS_TIMEZONE = os.environ.get('BUSINESS_TIMEZONE', 'Asia/Almaty')

# Polling Settings (in seconds)
POLL_INTERVAL_SECONDS = float(os.environ.get('POLL_INTERVAL_SECONDS', 60))
RESTART_SETTLE_SECONDS = float(os.environ.get('RESTART_SETTLE_SECONDS', 0.5))
FETCH_TIMEOUT_SECONDS = float(os.environ.get('FETCH_TIMEOUT_SECONDS', 30))

# HTTP Settings
REQUEST_TIMEOUT = int(os.environ.get('REQUEST_TIMEOUT', 30))

# Retry Settings
MAX_RETRIES = int(os.environ.get('MAX_RETRIES', 2))
BASE_DELAY = float(os.environ.get('BASE_DELAY', 1.0))

# Cache Settings
ROSTER_CACHE_TTL_SECONDS = int(os.environ.get('ROSTER_CACHE_TTL_SECONDS', 300))

# Task query defaults
DEFAULT_SORT_BY = os.environ.get('DEFAULT_SORT_BY', 'scheduleDate')
DEFAULT_SORT_ORDER = os.environ.get('DEFAULT_SORT_ORDER', 'asc')

# Working date defaults
DEFAULT_WORK_START = os.environ.get('DEFAULT_WORK_START', '09:00')
DEFAULT_WORK_END = os.environ.get('DEFAULT_WORK_END', '18:00')

# Display Settings
UNKNOWN_CLIENT_NAME = os.environ.get('UNKNOWN_CLIENT_NAME', 'Неизвестный клиент')

# History Settings
HISTORY_MAX_ENTRIES = int(os.environ.get('HISTORY_MAX_ENTRIES', 100))

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
STRUCTURED_LOGGING = os.environ.get('STRUCTURED_LOGGING', 'True').lower() == 'true'

# Development Settings
if DEBUG:
    LOG_LEVEL = 'DEBUG'
    POLL_INTERVAL_SECONDS = 10  # Faster polling for development
