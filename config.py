import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Database
DATABASE_PATH = os.getenv("DATABASE_PATH", "attendance.db")
DATABASE_TIMEOUT = float(os.getenv("DATABASE_TIMEOUT", "5"))

# Tokens and passwords
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 24 * 60))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# Classrooms
JOIN_CODE_LENGTH = 6
JOIN_CODE_MAX_ATTEMPTS = int(os.getenv("JOIN_CODE_MAX_ATTEMPTS", 5))
LEGACY_ATTENDANCE_ENABLED = os.getenv("LEGACY_ATTENDANCE_ENABLED", "true").lower() in ("1", "true", "yes")

# Streamlit client
API_URL = os.getenv("API_URL", "http://localhost:8000")
POLL_INTERVAL_SECONDS = int(os.getenv("POLL_INTERVAL_SECONDS", 10))


def is_development() -> bool:
    return ENVIRONMENT == "development"
