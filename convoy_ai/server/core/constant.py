PROJECT_NAME = "Convoy-AI"
API_PREFIX = "/api"
OWNER_HEADER = "X-Owner-Id"
