import os

from dotenv import load_dotenv

load_dotenv(os.getenv("ENV_FILE"), override=True)

# General
PRODUCT = os.getenv("PRODUCT", "contentflow")
VERSION = os.environ.get("VERSION", "0")
ENV = os.getenv("ENV", "stg")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
LOG_FILE = os.getenv("LOG_FILE", "") or None

BASE_PATH = os.path.dirname(os.path.realpath(__file__))

# LLM
DEFAULT_MODEL = "gpt-4o-mini" if ENV in ["stg", "prd"] else "gpt-4.1-nano"
LLM_MODEL = os.getenv("LLM_MODEL", DEFAULT_MODEL)
LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))
ENABLE_LANGFUSE = os.getenv("ENABLE_LANGFUSE", "false").lower() in ["1", "true", "yes"]

# Storage
STORE_PATH = os.getenv("STORE_PATH", os.path.join(os.getcwd(), "contentflow_store.json"))

# Workflow
SERIALIZE_PARTITIONS = os.getenv("SERIALIZE_PARTITIONS", "false").lower() in ["1", "true", "yes"]
DEFAULT_PHRASE_DIFFICULTY = 1
MAX_BULK_LESSONS = int(os.getenv("MAX_BULK_LESSONS", "20"))
MAX_GENERATED_PROVERBS = 20
MAX_EXISTING_PROVERBS_IN_PROMPT = 40
