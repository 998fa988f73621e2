import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get(
        'SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL') or 'sqlite:///moderation.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SENTRY_DSN = os.environ.get('SENTRY_DSN')

    # Optional OpenAI moderation scoring for the text classifier
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    OPENAI_MODERATION_MODEL = os.environ.get(
        'OPENAI_MODERATION_MODEL', 'omni-moderation-latest')

    DISCORD_WEBHOOK_URL = os.environ.get('DISCORD_WEBHOOK_URL')

    # Pipeline tuning
    CLASSIFIER_TIMEOUT_SECONDS = float(os.environ.get(
        'CLASSIFIER_TIMEOUT_SECONDS', '10'))
    MODERATION_BATCH_SIZE = int(os.environ.get('MODERATION_BATCH_SIZE', '10'))
    MODERATION_BATCH_DELAY = float(os.environ.get(
        'MODERATION_BATCH_DELAY', '0.1'))
    IMAGE_BATCH_SIZE = int(os.environ.get('IMAGE_BATCH_SIZE', '5'))
    IMAGE_BATCH_DELAY = float(os.environ.get('IMAGE_BATCH_DELAY', '0.2'))
    DB_THREAD_POOL_WORKERS = int(os.environ.get('DB_THREAD_POOL_WORKERS', '8'))
    CLASSIFIER_THREAD_POOL_WORKERS = int(os.environ.get(
        'CLASSIFIER_THREAD_POOL_WORKERS', '8'))

    # Database connection preference
    USE_DIRECT_POSTGRES = bool(os.environ.get(
        'DATABASE_URL', '').startswith('postgresql://'))

    # SQLAlchemy connection pool configuration
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,                    # Number of connections to maintain in pool
        'pool_timeout': 30,                # Seconds to wait for connection from pool
        'pool_recycle': 1800,              # Seconds before recreating connection (30 min)
        'pool_pre_ping': True,
        'max_overflow': 10,
        'echo': bool(os.environ.get('SQL_DEBUG', False))
    }


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SENTRY_DSN = None
    OPENAI_API_KEY = None
    DISCORD_WEBHOOK_URL = None
    MODERATION_BATCH_DELAY = 0.0
    IMAGE_BATCH_DELAY = 0.0
    CLASSIFIER_TIMEOUT_SECONDS = 5.0


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
