import os
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()

BASE_DIR = Path(__file__).resolve().parents[2]

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_PATH = Path(os.getenv("DB_PATH", str(BASE_DIR / "ogwini.db")))

STORAGE_ROOT = Path(os.getenv("STORAGE_ROOT", str(BASE_DIR / "uploads")))

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))

MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_MB", "10")) * 1024 * 1024

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "Ogwini Comprehensive Technical High School")

BANK_NAME = os.getenv("BANK_NAME", "FNB (First National Bank)")
BANK_ACCOUNT_NAME = os.getenv("BANK_ACCOUNT_NAME", SCHOOL_NAME)
BANK_ACCOUNT_NUMBER = os.getenv("BANK_ACCOUNT_NUMBER", "62890547123")
BANK_BRANCH_CODE = os.getenv("BANK_BRANCH_CODE", "250655")

SUBSCRIPTION_AMOUNT = int(os.getenv("SUBSCRIPTION_AMOUNT", "20"))

# seconds
RESET_TOKEN_MAX_AGE = int(os.getenv("RESET_TOKEN_MAX_AGE", "3600"))


def as_dict() -> dict:
    return {
        "SECRET_KEY": SECRET_KEY,
        "DB_PATH": DB_PATH,
        "STORAGE_ROOT": STORAGE_ROOT,
        "PUBLIC_BASE_URL": PUBLIC_BASE_URL,
        "LOG_LEVEL": LOG_LEVEL,
        "LOG_DIR": LOG_DIR,
        "MAX_CONTENT_LENGTH": MAX_CONTENT_LENGTH,
        "SCHOOL_NAME": SCHOOL_NAME,
        "BANK_NAME": BANK_NAME,
        "BANK_ACCOUNT_NAME": BANK_ACCOUNT_NAME,
        "BANK_ACCOUNT_NUMBER": BANK_ACCOUNT_NUMBER,
        "BANK_BRANCH_CODE": BANK_BRANCH_CODE,
        "SUBSCRIPTION_AMOUNT": SUBSCRIPTION_AMOUNT,
        "RESET_TOKEN_MAX_AGE": RESET_TOKEN_MAX_AGE,
    }
