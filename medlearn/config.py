"""
MedLearn Configuration
Environment driven settings for storage, auth and content access rules
"""

import os

# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "medlearn_db")

# JWT (shared secret with the identity service)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_COOKIE_NAME = os.getenv("JWT_COOKIE_NAME", "jwt")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))

# Prefix for relative upload paths (e.g. "/uploads/x.png")
BACKEND_IMAGE_DOMAIN = os.getenv("BACKEND_IMAGE_DOMAIN", "")

# Access control
FREE_TEASER_COUNT = int(os.getenv("FREE_TEASER_COUNT", "2"))
LOGGED_IN_EXTRA_FREE = int(os.getenv("LOGGED_IN_EXTRA_FREE", "3"))
LOCKED_DESCRIPTION_LENGTH = int(os.getenv("LOCKED_DESCRIPTION_LENGTH", "100"))

# Progress tracking
COMPLETION_THRESHOLD = float(os.getenv("COMPLETION_THRESHOLD", "0.8"))

# Aggregation surfaces
RECOMMENDATION_HISTORY_WINDOW = int(os.getenv("RECOMMENDATION_HISTORY_WINDOW", "20"))
RECENT_DICOM_LIMIT = 8
RECENT_LECTURE_LIMIT = 7
RECENT_LIVE_LIMIT = 5
TOP_RATED_LECTURE_LIMIT = 12
TOP_RATED_CASE_LIMIT = 10
TOP_WATCHED_LIMIT = 15

# HTTP
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
