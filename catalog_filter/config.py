import os

MODEL_NAME = os.environ.get("CATALOG_FILTER_MODEL", "gpt-4o-mini")
TEMPERATURE = 0.0 # Keep replies as stable as the model allows
REQUEST_TIMEOUT_SECONDS = float(os.environ.get("CATALOG_FILTER_TIMEOUT", "30"))

# Which items a price tool call filters: "seen" (last result) or "catalog" (everything)
TOOL_BASE_SET = os.environ.get("CATALOG_FILTER_TOOL_BASE_SET", "seen")

REDIS_URL = os.environ.get("CATALOG_FILTER_REDIS_URL", "redis://localhost:6379/0")
REDIS_KEY_PREFIX = "catalog_filter"
SESSION_TTL_SECONDS = int(os.environ.get("CATALOG_FILTER_SESSION_TTL", "86400")) # 0 disables expiry

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
SESSION_STORE = os.environ.get("CATALOG_FILTER_STORE", "memory") # "memory" | "redis"
# Redis session lock: expiry if a holder dies, and how long a request waits for it
REDIS_LOCK_TIMEOUT_SECONDS = REQUEST_TIMEOUT_SECONDS + 30
REDIS_LOCK_WAIT_SECONDS = float(os.environ.get("CATALOG_FILTER_LOCK_WAIT", "60"))
