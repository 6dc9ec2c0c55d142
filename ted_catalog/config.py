"""
Configuration
Values come from the environment (or a local .env file) with development defaults.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Scraping
TED_URL_PATTERN = os.getenv("TED_URL_PATTERN", r"^https?://(www\.)?ted\.com/talks/[\w-]+/?(\?.*)?$")
TED_BASE_URL = os.getenv("TED_BASE_URL", "https://www.ted.com")
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "30"))
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
)

# Languages
SUPPORTED_LANGUAGES = [
    code.strip().lower()
    for code in os.getenv("SUPPORTED_LANGUAGES", "en,ko,ja,zh-cn,zh-tw,es,fr,de").split(",")
    if code.strip()
]
DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "en").lower()

# Catalog
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "12"))

# Store
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")
SNOWFLAKE_ACCOUNT = os.getenv("SNOWFLAKE_ACCOUNT")
SNOWFLAKE_LOGIN = os.getenv("SNOWFLAKE_LOGIN")
SNOWFLAKE_WAREHOUSE = os.getenv("SNOWFLAKE_WAREHOUSE")
SNOWFLAKE_DATABASE = os.getenv("SNOWFLAKE_DATABASE", "TED_DB")
SNOWFLAKE_SCHEMA = os.getenv("SNOWFLAKE_SCHEMA", "CATALOG")
SNOWFLAKE_ROLE = os.getenv("SNOWFLAKE_ROLE")
SNOWFLAKE_KEY_PATH = os.getenv("SNOWFLAKE_KEY_PATH", "snowflake_key.pem")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def normalize_language(code):
    """zh-CN / zh_CN -> zh-cn. Anything that is not a string normalizes to ''."""
    if not isinstance(code, str):
        return ""
    return code.strip().replace("_", "-").lower()
