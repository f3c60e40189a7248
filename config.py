# Facility Visitor Management System Configuration

import os
from pathlib import Path

from visitor_management.modules.settings import CoreSettings

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'visitor-management-secret-key'

    # Database Configuration
    DATABASE_PATH = Path(os.environ.get('VISITOR_DB_PATH') or BASE_DIR / 'data' / 'visitors.db')

    # Upload / Export Configuration
    EXPORTS_FOLDER = BASE_DIR / 'exports'
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max file size
    ALLOWED_IMPORT_EXTENSIONS = {'csv', 'txt'}

    # Facility Configuration
    TIMEZONE = os.environ.get('VISITOR_TIMEZONE') or 'America/Los_Angeles'

    # Training Configuration
    TRAINING_EXPIRES_MONTHS = int(os.environ.get('TRAINING_EXPIRES_MONTHS') or 12)
    TRAINING_WARNING_DAYS = int(os.environ.get('TRAINING_WARNING_DAYS') or 30)
    # 'today' records the import date for rows without a readable date, 'reject' fails the row
    IMPORT_MISSING_DATE_POLICY = os.environ.get('IMPORT_MISSING_DATE_POLICY') or 'today'

    # Retention Configuration
    AUTO_PURGE_ENABLED = _env_flag('AUTO_PURGE_ENABLED', 'true')
    AUTO_PURGE_MONTHS = int(os.environ.get('AUTO_PURGE_MONTHS') or 24)

    # Listing Configuration
    RECENT_VISITS_LIMIT = 20
    SEARCH_DEFAULT_LIMIT = 10
    EXPORT_MAX_ROWS = 1000

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'visitors.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = _env_flag('DEBUG', 'False')
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        # Create necessary directories
        directories = [
            Path(cls.EXPORTS_FOLDER),
            Path(cls.DATABASE_PATH).parent,
            Path(cls.LOG_FILE).parent
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

        app.config.update({
            'SECRET_KEY': cls.SECRET_KEY,
            'MAX_CONTENT_LENGTH': cls.MAX_CONTENT_LENGTH,
        })


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    DATABASE_PATH = Path(os.environ.get('VISITOR_DB_PATH') or BASE_DIR / 'data' / 'visitors_dev.db')

    # More verbose logging
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    # Tests point this at a temporary file
    DATABASE_PATH = BASE_DIR / 'data' / 'visitors_test.db'

    # Purge is triggered explicitly by the tests
    AUTO_PURGE_ENABLED = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Production logging
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        # Production-specific initialization
        import logging
        from logging.handlers import RotatingFileHandler

        # Setup file logging
        if not app.debug:
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
            logging.getLogger('visitor_management').addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('Visitor Management System startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


# Environment-specific configurations
def get_config():
    """Get configuration based on environment variable"""
    return config.get(os.environ.get('FLASK_ENV', 'default'), DevelopmentConfig)


# Validation functions
def validate_config(config_class=None):
    """Validate configuration settings"""
    config_class = config_class or get_config()
    errors = CoreSettings.from_config(config_class).validate()

    if config_class.MAX_CONTENT_LENGTH <= 0:
        errors.append("MAX_CONTENT_LENGTH must be positive")

    return errors


# Initialize configuration
def init_config(app, config_name=None):
    """Initialize application with configuration"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')

    config_class = config.get(config_name, DevelopmentConfig)

    # Validate configuration
    errors = validate_config(config_class)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    config_class.init_app(app)
    return config_class
