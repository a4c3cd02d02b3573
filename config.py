import os
from dotenv import load_dotenv

load_dotenv()  # loads .env if present

class Config:
    # --- Database ---
    # Prefer an explicit DATABASE_URL (useful for deploys)
    DATABASE_URL = os.getenv('DATABASE_URL')

    # Split env vars for local setups. Defaults to SQLite so the app runs
    # without a MySQL/Postgres driver installed.
    DB_DIALECT = os.getenv('DB_DIALECT', 'sqlite')  # 'mysql', 'postgres' or 'sqlite'
    DB_USER = os.getenv('DB_USER', 'root')
    DB_PASS = os.getenv('DB_PASS', '')
    DB_HOST = os.getenv('DB_HOST', 'localhost')
    DB_PORT = os.getenv('DB_PORT', '3306')
    DB_NAME = os.getenv('DB_NAME', 'classroom_judge')

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-please-change')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Optional first admin account, created at startup when both are set
    ADMIN_EMAIL = os.getenv('ADMIN_EMAIL')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD')
    ADMIN_ROLL_NO = os.getenv('ADMIN_ROLL_NO', 'ADMIN')

    # --- Auth tokens ---
    TOKEN_MAX_AGE = int(os.getenv('TOKEN_MAX_AGE', 3600))  # seconds

    # --- Judge (Judge0 compatible) ---
    JUDGE_BASE_URL = os.getenv('JUDGE_BASE_URL', 'http://localhost:2358/')
    # RapidAPI hosted judge; leave empty for a self-hosted server
    JUDGE_API_KEY = os.getenv('JUDGE_API_KEY', '')
    JUDGE_API_HOST = os.getenv('JUDGE_API_HOST', '')
    # Self-hosted judge with AUTHN enabled
    JUDGE_AUTH_USER = os.getenv('JUDGE_AUTH_USER', '')
    JUDGE_AUTH_TOKEN = os.getenv('JUDGE_AUTH_TOKEN', '')
    JUDGE_TIMEOUT = float(os.getenv('JUDGE_TIMEOUT', 10))
    JUDGE_MAX_RETRIES = int(os.getenv('JUDGE_MAX_RETRIES', 3))
    JUDGE_BACKOFF_FACTOR = float(os.getenv('JUDGE_BACKOFF_FACTOR', 0.5))

    @staticmethod
    def get_database_uri():
        """Build and return the database URI"""
        if Config.DATABASE_URL:
            return Config.DATABASE_URL
        if Config.DB_DIALECT.lower() == 'mysql':
            # requires pymysql
            return f'mysql+pymysql://{Config.DB_USER}:{Config.DB_PASS}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}'
        if Config.DB_DIALECT.lower() in ('postgres', 'postgresql'):
            return f'postgresql+psycopg2://{Config.DB_USER}:{Config.DB_PASS}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}'
        # default: file-based SQLite database in project folder
        db_path = os.path.join(os.path.dirname(__file__), 'data.sqlite')
        return f'sqlite:///{db_path}'
