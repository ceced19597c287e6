import os
from dotenv import load_dotenv
load_dotenv()


def _flag(name, default):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    # Database
    MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB = os.environ.get("MONGO_DB", "eboto")
    MONGO_TLS = _flag("MONGO_TLS", "false")
    # multi-document transactions need a replica set; without them writes are rolled back by compensation
    MONGO_TRANSACTIONS = _flag("MONGO_TRANSACTIONS", "false")

    # JWT issued by the identity provider
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "change-me-to-a-strong-secret")
    JWT_ACCESS_TOKEN_EXPIRES = int(os.environ.get("JWT_EXPIRES_SECONDS", 3600))

    # Voting window
    ENFORCE_VOTING_HOURS = _flag("ENFORCE_VOTING_HOURS", "true")
    VOTING_TIMEZONE = os.environ.get("VOTING_TIMEZONE", "UTC")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
