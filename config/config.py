import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    # Key the verification backend signs its tokens with
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or SECRET_KEY
    JWT_ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
    DATABASE_URL = os.environ.get('DATABASE_URL') or 'sqlite:///casedesk.db'
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', str(50 * 1024 * 1024)))

    # Verification backend
    BACKEND_API_URL = os.environ.get('BACKEND_API_URL', 'http://localhost:5000/api')
    BACKEND_AUTH_HEADER = os.environ.get('BACKEND_AUTH_HEADER', 'x-auth-token')
    REQUEST_TIMEOUT_SECONDS = int(os.environ.get('REQUEST_TIMEOUT_SECONDS', '15'))
    SEND_LINK_TIMEOUT_SECONDS = int(os.environ.get('SEND_LINK_TIMEOUT_SECONDS', '30'))
    REPORT_TIMEOUT_SECONDS = int(os.environ.get('REPORT_TIMEOUT_SECONDS', '120'))

    # Upload conventions shared with the backend
    VERIFIED_FIELD_KEY_PREFIX = 'verified_'
    VERIFIED_FILENAME_PREFIX = '[VERIFIED]'
    DEFAULT_REPORT_FILENAME = 'Verification_Report.pdf'
    BULK_ALLOWED_EXTENSIONS = ('csv', 'xlsx')
    MAX_EDUCATION_ENTRIES = int(os.environ.get('MAX_EDUCATION_ENTRIES', '20'))

    # Where the admin review lands after "save all"
    ADMIN_HOME_PATH = os.environ.get('ADMIN_HOME_PATH', '/admin')

    # A save claim older than this is treated as abandoned
    SAVE_STALE_SECONDS = int(os.environ.get('SAVE_STALE_SECONDS', '300'))

    # Logging
    LOG_FILE = os.environ.get('LOG_FILE', 'logs/casedesk.log')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    DEBUG = True
    TESTING = True


class ProductionConfig(Config):
    DEBUG = False
    TESTING = False


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
