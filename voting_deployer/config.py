import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from eth_account import Account

# ==============================================================================
# CONFIGURATION
# ==============================================================================

# Network used when DEPLOY_NETWORK is not set
DEFAULT_NETWORK = "localhost"

# Known networks (RPC endpoint, chain id, block explorer tx prefix)
NETWORKS = {
    "localhost": {
        "rpc_url": "http://127.0.0.1:8545",
        "chain_id": 31337,
        "explorer": None,
    },
    "hardhat": {
        "rpc_url": "http://127.0.0.1:8545",
        "chain_id": 31337,
        "explorer": None,
    },
    "sepolia": {
        "rpc_url": "https://rpc.sepolia.org",
        "chain_id": 11155111,
        "explorer": "https://sepolia.etherscan.io/tx/",
    },
}

# Contract to deploy and its constructor argument
CONTRACT_NAME = "VotingSystem"
ELECTION_NAME = "Presidential Election 2024"

# Compiled Hardhat output (npx hardhat compile)
ARTIFACTS_DIR = "./artifacts"

# Deployment records, one <network>_deployment.json per network
DEPLOYMENTS_DIR = "./deployments"

# Log files
LOG_DIR = "./logs"

# HTTP timeout for a single RPC request, in seconds
RPC_TIMEOUT = 60

# Seconds between receipt polls while waiting for confirmation
CONFIRMATION_POLL_INTERVAL = 2

# ==============================================================================
# END OF CONFIGURATION
# ==============================================================================


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one deployment run"""

    network: str
    rpc_url: str
    chain_id: int
    explorer: Optional[str]
    artifacts_dir: Path
    deployments_dir: Path
    contract_name: str = CONTRACT_NAME
    election_name: str = ELECTION_NAME
    private_key: Optional[str] = None
    rpc_timeout: float = RPC_TIMEOUT
    poll_interval: float = CONFIRMATION_POLL_INTERVAL


def _normalize_hex_key(s: str) -> str:
    s = s.strip()
    hex_part = s[2:] if s.startswith("0x") else s
    if len(hex_part) != 64 or any(c not in "0123456789abcdefABCDEF" for c in hex_part):
        raise ValueError("private_key must be a 32-byte hex key (64 hex chars).")
    return "0x" + hex_part.lower()


def load_wallet(wallet_path):
    """
    Read the deployer key file

    The file is JSON with ``address`` and ``private_key``. The address must
    be the one the key controls.
    """
    json_key = json.loads(Path(wallet_path).read_text(encoding="utf-8"))
    private_key = _normalize_hex_key(json_key["private_key"])

    derived = Account.from_key(private_key).address
    address = json_key.get("address")
    if address and address.lower() != derived.lower():
        raise ValueError(
            f"Key file address {address} does not match its private key ({derived})"
        )

    return {"address": derived, "private_key": private_key}


def load_settings(network=None):
    """
    Resolve settings for the selected network

    The network comes from ``network`` or the DEPLOY_NETWORK switch, as
    ``--network`` would on a Hardhat run. DEPLOY_RPC_URL overrides the
    endpoint and DEPLOYER_KEYFILE selects local signing.
    """
    load_dotenv()

    name = network or os.getenv("DEPLOY_NETWORK") or DEFAULT_NETWORK
    if name not in NETWORKS:
        known = ", ".join(sorted(NETWORKS))
        raise ValueError(f"Unknown network '{name}' (known: {known})")
    net = NETWORKS[name]

    private_key = None
    keyfile = os.getenv("DEPLOYER_KEYFILE")
    if keyfile:
        private_key = load_wallet(keyfile)["private_key"]

    return Settings(
        network=name,
        rpc_url=os.getenv("DEPLOY_RPC_URL") or net["rpc_url"],
        chain_id=net["chain_id"],
        explorer=net["explorer"],
        artifacts_dir=Path(ARTIFACTS_DIR),
        deployments_dir=Path(DEPLOYMENTS_DIR),
        private_key=private_key,
    )
