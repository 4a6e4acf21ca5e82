"""
Configuration file for the application
Loads settings from environment variables
"""
import os
from dotenv import load_dotenv

# Load environment variables (for local development)
load_dotenv()


def _env_bool(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration"""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY')
    DEBUG = _env_bool('DEBUG', 'True')

    # Token settings
    JWT_SECRET = os.environ.get('JWT_SECRET')
    JWT_ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
    JWT_EXPIRES_HOURS = int(os.environ.get('JWT_EXPIRES_HOURS', 24))

    # Database settings
    DATABASE_URL = os.environ.get('DATABASE_URL')

    if DATABASE_URL:
        if DATABASE_URL.startswith('postgres://'):
            # Normalize legacy postgres scheme
            DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)
        if DATABASE_URL.startswith('postgresql://'):
            DATABASE_TYPE = 'postgresql'
        else:
            DATABASE_TYPE = 'sqlite'
    else:
        DATABASE_TYPE = 'sqlite'
        DATABASE_URL = 'sqlite:///autoexam.db'

    # auto | sql | memory
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'auto').lower()

    # Uploads
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))
    MAX_UPLOAD_MB = int(os.environ.get('MAX_UPLOAD_MB', 10))

    # Catalog
    SEED_SAMPLE_TESTS = _env_bool('SEED_SAMPLE_TESTS', 'True')

    # Admin settings (for first admin bootstrap)
    ADMIN_SETUP_KEY = os.environ.get('ADMIN_SETUP_KEY', 'admin-setup-secret-key')

    # Payment settings
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', 'sk_test_your_test_key')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')

    # CORS
    ALLOWED_ORIGINS = os.environ.get('ALLOWED_ORIGINS', 'http://localhost:3000,http://localhost:5173').split(',')

    # Server settings
    PORT = int(os.environ.get('PORT', 5002))
    HOST = os.environ.get('HOST', '0.0.0.0')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

    @classmethod
    def get_db_config(cls):
        """Get database configuration dictionary"""
        if cls.DATABASE_TYPE == 'postgresql':
            return {
                'DATABASE_TYPE': 'postgresql',
                'DATABASE_URL': cls.DATABASE_URL
            }
        else:
            return {
                'DATABASE_TYPE': 'sqlite',
                'DATABASE': cls.DATABASE_URL.replace('sqlite:///', '')
            }
