import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./luct_reporting.db")
SEED_REFERENCE_DATA = os.getenv("SEED_REFERENCE_DATA", "1") == "1"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))

# Course code prefix for each program shown on the PL dashboard
PROGRAM_PREFIXES = {
    "Web Development": "DIWA",
    "Database Systems": "DBS",
    "Networking": "NET",
}

# Monitoring windows, in days
MONITORING_RANGES = {
    "week": 7,
    "month": 30,
    "semester": 120,
}
