import os
from dotenv import load_dotenv
load_dotenv()
# ---- JSON-RPC node ----
DISCOVERY_RPC_URL = os.environ.get("DISCOVERY_RPC_URL")
DISCOVERY_RPC_TIMEOUT_SEC = int(os.environ.get("DISCOVERY_RPC_TIMEOUT_SEC", "15"))
DISCOVERY_RPC_REQUESTS_PER_SEC = float(os.environ.get("DISCOVERY_RPC_REQUESTS_PER_SEC", "10"))
DISCOVERY_RPC_MAX_RETRIES = int(os.environ.get("DISCOVERY_RPC_MAX_RETRIES", "5"))

# ---- Etherscan (verified sources) ----
ETHERSCAN_API_KEY = os.environ.get("ETHERSCAN_API_KEY")
ETHERSCAN_CHAIN_ID = int(os.environ.get("ETHERSCAN_CHAIN_ID", "1"))   # Ethereum mainnet
ETHERSCAN_BASE_URL = "https://api.etherscan.io/v2/api"

ETHERSCAN_REQUESTS_PER_SEC = 2.0
ETHERSCAN_TIMEOUT_SEC = 15
ETHERSCAN_MAX_RETRIES = 5

# ---- Discovery runs ----

# 30 attempts x 20s ~ 10 minutes before a run is declared failed
DISCOVERY_MAX_ATTEMPTS = int(os.environ.get("DISCOVERY_MAX_ATTEMPTS", "30"))
DISCOVERY_RETRY_DELAY_SEC = float(os.environ.get("DISCOVERY_RETRY_DELAY_SEC", "20"))

# bounds are scaled by this when seeding from the previous output
DISCOVERY_SEED_MULTIPLIER = 3

DEFAULT_MAX_ADDRESSES = 200
DEFAULT_MAX_DEPTH = 6

# ---- Config files ----
DISCOVERY_CONFIG_DIR = os.environ.get("DISCOVERY_CONFIG_DIR", "discovery")
DISCOVERY_CONFIG_FILE = "config.jsonc"
DISCOVERY_OUTPUT_FILE = "discovered.json"
