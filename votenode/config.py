"""
Votenode Configuration.

Shared settings read from the environment. Call reload() after changing
the environment to refresh the module-level values.
"""

import os
from pathlib import Path

# Base Paths
VOTENODE_DIR = Path.home() / ".votenode"
DEFAULT_DB_PATH = VOTENODE_DIR / "votenode.db"
DEFAULT_CENSUS_DB_PATH = VOTENODE_DIR / "census.db"

DB_PATH = str(DEFAULT_DB_PATH)
CENSUS_DB_PATH = str(DEFAULT_CENSUS_DB_PATH)

# Chain
ETH_URL = ""
CONTRACT_ADDR = ""

# Connection pool
CONNECTION_POOL_SIZE = 5

# Seconds to wait after a subscription error before reading it again
SUBSCRIPTION_RETRY_DELAY = 1.0

LOG_LEVEL = "INFO"


def reload() -> None:
    """Re-read every setting from the environment."""
    global VOTENODE_DIR, DEFAULT_DB_PATH, DEFAULT_CENSUS_DB_PATH
    global DB_PATH, CENSUS_DB_PATH, ETH_URL, CONTRACT_ADDR
    global CONNECTION_POOL_SIZE, SUBSCRIPTION_RETRY_DELAY, LOG_LEVEL

    VOTENODE_DIR = Path(os.environ.get("VOTENODE_DIR", str(Path.home() / ".votenode")))
    DEFAULT_DB_PATH = VOTENODE_DIR / "votenode.db"
    DEFAULT_CENSUS_DB_PATH = VOTENODE_DIR / "census.db"

    DB_PATH = os.environ.get("VOTENODE_DB", str(DEFAULT_DB_PATH))
    CENSUS_DB_PATH = os.environ.get("VOTENODE_CENSUS_DB", str(DEFAULT_CENSUS_DB_PATH))

    ETH_URL = os.environ.get("VOTENODE_ETH_URL", "ws://127.0.0.1:8546")
    CONTRACT_ADDR = os.environ.get("VOTENODE_CONTRACT_ADDR", "")

    CONNECTION_POOL_SIZE = int(os.environ.get("VOTENODE_POOL_SIZE", "5"))
    SUBSCRIPTION_RETRY_DELAY = float(
        os.environ.get("VOTENODE_SUBSCRIPTION_RETRY_DELAY", "1.0")
    )
    LOG_LEVEL = os.environ.get("VOTENODE_LOG_LEVEL", "INFO").upper()


reload()
