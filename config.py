import os

FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
FIREBASE_STORAGE_BUCKET = os.getenv("FIREBASE_STORAGE_BUCKET")

# Web API key, only needed for password sign-in through Identity Toolkit
FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY", "")
IDENTITY_TOOLKIT_URL = os.getenv(
    "IDENTITY_TOOLKIT_URL", "https://identitytoolkit.googleapis.com/v1"
)
IDENTITY_TOOLKIT_TIMEOUT = float(os.getenv("IDENTITY_TOOLKIT_TIMEOUT", 10))

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

# Uploaded blobs are made public so their URL can be stored on documents
UPLOAD_PUBLIC = os.getenv("UPLOAD_PUBLIC", "true").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
