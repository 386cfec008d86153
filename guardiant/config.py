import os

from dotenv import load_dotenv

load_dotenv()


# ---------------- DATABASE ----------------

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./guardiant.db")


# ---------------- AUTH ----------------

JWT_SECRET = os.getenv("JWT_SECRET", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Cost factor shared by account passwords and PINs
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

MIN_PASSWORD_LENGTH = 6


# ---------------- ALERT DETAILS ----------------

# Alert details carry coordinates, they are encrypted at rest
DETAILS_SECRET = os.getenv("DETAILS_SECRET", JWT_SECRET)


# ---------------- PUSH (FCM) ----------------

FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "guardiant")
GOOGLE_APPLICATION_CREDENTIALS = os.getenv(
    "GOOGLE_APPLICATION_CREDENTIALS", "serviceAccountKey.json"
)
FCM_TIMEOUT = int(os.getenv("FCM_TIMEOUT", "10"))


# ---------------- SMS (SNS) ----------------

AWS_ACCESS_KEY = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET = os.getenv("AWS_SECRET_ACCESS_KEY")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
SMS_SENDER_ID = os.getenv("SMS_SENDER_ID", "Guardiant")


# ---------------- OTP ----------------

OTP_TTL_MINUTES = 10
OTP_MAX_ATTEMPTS = 5


# ---------------- LISTINGS ----------------

ALERTS_LIMIT = 10
ACTIVITY_LIMIT = 10


# ---------------- LOGGING ----------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
AUDIT_LOG_FILE = os.getenv("AUDIT_LOG_FILE", "audit.log")
