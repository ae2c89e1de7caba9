"""Configuration module for Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    JSON_SORT_KEYS = False

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'sarisari')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'sarisari')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'sarisari')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    DB_POOL_SIZE = int(os.getenv('DB_POOL_SIZE', '10'))
    DB_MAX_OVERFLOW = int(os.getenv('DB_MAX_OVERFLOW', '20'))

    # Bounded wait (seconds) for row locks and statements before a sale aborts
    STORAGE_TIMEOUT_SECONDS = float(os.getenv('STORAGE_TIMEOUT_SECONDS', '5'))

    # Sales
    TAX_RATE = Decimal(os.getenv('TAX_RATE', '0.12'))  # Philippine VAT
    TRANSACTION_NUMBER_PREFIX = os.getenv('TRANSACTION_NUMBER_PREFIX', 'TXN')
    TRANSACTION_NUMBER_MAX_RETRIES = int(os.getenv('TRANSACTION_NUMBER_MAX_RETRIES', '5'))
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₱')
    STORE_NAME = os.getenv('STORE_NAME', 'Sari-Sari Store')  # Receipt header

    # Observability
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    SENTRY_DSN = os.getenv('SENTRY_DSN')
