"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""
    
    # Database
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "booksdb")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_MIN_CONN = int(os.getenv("DB_MIN_CONN", "1"))
    DB_MAX_CONN = int(os.getenv("DB_MAX_CONN", "10"))
    
    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
    
    # Storage
    STORE_BACKEND = os.getenv("STORE_BACKEND", "postgres")
    CATALOG_ROOT = os.getenv("CATALOG_ROOT", "books")
    
    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
