import os
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

# --------------------------------------------------
# Fact Source Configuration
# --------------------------------------------------
# Base URL of the JSON fact gateway in front of the ledger
FACT_SOURCE_URL = os.environ.get("FACT_SOURCE_URL") or "http://localhost:8545/plasa"
# Address of the Plasa registry contract (root of the PlasaView)
PLASA_REGISTRY_ADDRESS = (
    os.environ.get("PLASA_REGISTRY_ADDRESS") or "0x0000000000000000000000000000000000000000"
)

# --------------------------------------------------
# Snapshot Consistency Policy
# --------------------------------------------------
SNAPSHOT_MAX_ATTEMPTS = int(os.environ.get("SNAPSHOT_MAX_ATTEMPTS", "3"))
# Seconds allowed for a single fact read
FACT_READ_TIMEOUT = float(os.environ.get("FACT_READ_TIMEOUT", "10.0"))
# Seconds allowed for a whole composition, retries included
COMPOSITION_TIMEOUT = float(os.environ.get("COMPOSITION_TIMEOUT", "30.0"))
# Concurrent fact reads allowed within one composition
MAX_CONCURRENT_READS = int(os.environ.get("MAX_CONCURRENT_READS", "32"))

# --------------------------------------------------
# View Configuration
# --------------------------------------------------
TOP_HOLDERS_LIMIT = int(os.environ.get("TOP_HOLDERS_LIMIT", "10"))
# "replace": a later ballot for another option wins; "reject": the first ballot stands
VOTE_CHANGE_POLICY = os.environ.get("VOTE_CHANGE_POLICY", "replace").lower()

# --------------------------------------------------
# API Configuration
# --------------------------------------------------
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000")
