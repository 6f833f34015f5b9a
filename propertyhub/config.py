import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "True").lower() in ["true", "1", "yes"]
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "PropertyHub <noreply@propertyhub.com>")

    # --- CELERY / REDIS ---
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
    CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)
    CELERY_ALWAYS_EAGER = False
    SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "UTC")
    BILLING_TICK_HOUR = int(os.getenv("BILLING_TICK_HOUR", 0))
    BILLING_TICK_MINUTE = int(os.getenv("BILLING_TICK_MINUTE", 1))
    LEASE_EXPIRY_SWEEP_ENABLED = os.getenv("LEASE_EXPIRY_SWEEP_ENABLED", "False").lower() in ["true", "1", "yes"]

    # --- TWILIO ---
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

    # --- JWT ---
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-this-in-prod")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.getenv("JWT_ACCESS_MINUTES", 60)))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.getenv("JWT_REFRESH_DAYS", 7)))
    JWT_BLACKLIST_ENABLED = True

    # --- UPLOADS / DOCUMENTS ---
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(BASE_DIR, "uploads"))
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_FILE_SIZE", 50 * 1024 * 1024))
    ALLOWED_FILE_TYPES = os.getenv(
        "ALLOWED_FILE_TYPES", "image/jpeg,image/jpg,image/png,application/pdf"
    ).split(",")

    # --- DEMO PAYMENT GATEWAY ---
    PAYMENT_GATEWAY_MIN_DELAY = float(os.getenv("PAYMENT_GATEWAY_MIN_DELAY", 1.0))
    PAYMENT_GATEWAY_MAX_DELAY = float(os.getenv("PAYMENT_GATEWAY_MAX_DELAY", 3.0))

    # --- FLASK ---
    SECRET_KEY = os.getenv("SECRET_KEY", "change-this-in-prod")
    ENV = os.getenv("FLASK_ENV", "production")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///propertyhub-test.db")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    MAIL_SUPPRESS_SEND = True
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
    CELERY_ALWAYS_EAGER = True
    TWILIO_ACCOUNT_SID = None
    TWILIO_AUTH_TOKEN = None
    TWILIO_PHONE_NUMBER = None
    PAYMENT_GATEWAY_MIN_DELAY = 0.0
    PAYMENT_GATEWAY_MAX_DELAY = 0.0
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
