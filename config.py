"""
Application configuration, loaded once at startup from the environment.
"""

import logging
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./store.db")

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 days

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
RESET_TOKEN_TTL_MINUTES = 60

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@edujuegos.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
ADMIN_NAME = os.getenv("ADMIN_NAME", "María González")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))


def configure_logging():
    """Install one stream handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"))
        root.addHandler(handler)
