"""
Ledger-side collaborators of the deployment recorder

Thin adapters over web3: artifact lookup in Hardhat build output, contract
factories, deployed contract handles and the accounts that pay for
deployment. Everything the recorder needs from the outside world is bundled
into a DeploymentContext by connect().
"""

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests
from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import TransactionNotFound

from voting_deployer import __version__
from voting_deployer.config import CONFIRMATION_POLL_INTERVAL
from voting_deployer.errors import ArtifactNotFoundError, DeploymentError, VerificationError
from voting_deployer.recorder import RecordStore


@dataclass(frozen=True)
class Artifact:
    name: str
    source: str
    abi: list
    bytecode: str


class ArtifactRegistry:
    """Looks up compiled contracts in a Hardhat artifacts directory"""

    def __init__(self, artifacts_dir, w3, poll_interval=CONFIRMATION_POLL_INTERVAL):
        self.artifacts_dir = Path(artifacts_dir)
        self.w3 = w3
        self.poll_interval = poll_interval

    def _candidates(self, name):
        if ":" in name:
            # Fully qualified name: contracts/VotingSystem.sol:VotingSystem
            source, contract = name.rsplit(":", 1)
            path = self.artifacts_dir / source / f"{contract}.json"
            return [path] if path.exists() else []

        if not self.artifacts_dir.is_dir():
            return []

        return sorted(
            p for p in self.artifacts_dir.rglob(f"{name}.json")
            if "build-info" not in p.relative_to(self.artifacts_dir).parts
        )

    def load(self, name):
        """Read the artifact for a contract name"""
        paths = self._candidates(name)

        if not paths:
            raise ArtifactNotFoundError(
                f"Artifact for contract '{name}' not found in {self.artifacts_dir}. "
                "Run `npx hardhat compile` first."
            )
        if len(paths) > 1:
            sources = ", ".join(str(p.parent.relative_to(self.artifacts_dir)) for p in paths)
            raise ArtifactNotFoundError(
                f"Contract name '{name}' is ambiguous ({sources}); use a fully qualified name"
            )

        path = paths[0]
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ArtifactNotFoundError(f"Cannot read artifact {path}: {e}", cause=e) from e

        abi = data.get("abi")
        bytecode = data.get("bytecode") or ""
        if not isinstance(abi, list) or bytecode in ("", "0x"):
            raise ArtifactNotFoundError(
                f"Artifact {path} has no deployable bytecode (abstract contract or interface?)"
            )

        return Artifact(
            name=data.get("contractName", name),
            source=data.get("sourceName", str(path.parent.relative_to(self.artifacts_dir))),
            abi=abi,
            bytecode=bytecode,
        )

    def get_factory(self, name, signer):
        """Resolve a deployable factory bound to ``signer``"""
        return ContractFactory(self.w3, self.load(name), signer, poll_interval=self.poll_interval)


class ContractFactory:
    """Deploys new instances of one artifact"""

    def __init__(self, w3, artifact, signer, poll_interval=CONFIRMATION_POLL_INTERVAL):
        self.w3 = w3
        self.artifact = artifact
        self.signer = signer
        self.poll_interval = poll_interval
        self._contract = w3.eth.contract(abi=artifact.abi, bytecode=artifact.bytecode)

    def deploy(self, *args):
        """
        Submit the deployment transaction

        One attempt only. Returns as soon as the node accepts the
        transaction; the handle is not usable for reads until
        wait_for_confirmation() returns.
        """
        tx_hash = self.signer.send(self._contract.constructor(*args))
        return DeployedContract(
            self.w3, self.artifact, Web3.to_hex(tx_hash), poll_interval=self.poll_interval
        )


class DeployedContract:
    """Handle on a submitted deployment"""

    def __init__(self, w3, artifact, transaction_hash, poll_interval=CONFIRMATION_POLL_INTERVAL):
        self.w3 = w3
        self.artifact = artifact
        self.transaction_hash = transaction_hash
        self.poll_interval = poll_interval
        self.address = None
        self.gas_limit = None
        self.receipt = None
        self._contract = None

    def wait_for_confirmation(self):
        """
        Block until the deployment transaction is mined

        There is no timeout. A reverted deployment raises DeploymentError.
        """
        while True:
            try:
                receipt = self.w3.eth.get_transaction_receipt(self.transaction_hash)
            except TransactionNotFound:
                receipt = None

            if receipt is not None and receipt.get("blockNumber") is not None:
                break

            time.sleep(self.poll_interval)

        if receipt["status"] != 1:
            raise DeploymentError(
                f"Deployment transaction {self.transaction_hash} reverted "
                f"in block {receipt['blockNumber']}"
            )

        self.receipt = receipt
        self.address = receipt["contractAddress"]
        self.gas_limit = self.w3.eth.get_transaction(self.transaction_hash)["gas"]
        self._contract = self.w3.eth.contract(address=self.address, abi=self.artifact.abi)

        return receipt

    def call(self, function_name):
        """Read-only call of a no-argument contract function"""
        if self._contract is None:
            raise VerificationError(
                f"Cannot call {function_name}(): deployment {self.transaction_hash} not confirmed"
            )
        return getattr(self._contract.functions, function_name)().call()


class NodeAccountSigner:
    """
    Account unlocked on the node

    Hardhat, Anvil and Ganache expose funded dev accounts; the first one
    is the default deployer, as with ``ethers.getSigners()``.
    """

    def __init__(self, w3, index=0):
        self.w3 = w3
        self.index = index
        self._address = None

    @property
    def address(self):
        if self._address is None:
            accounts = self.w3.eth.accounts
            if len(accounts) <= self.index:
                raise DeploymentError(
                    f"Node exposes {len(accounts)} account(s); cannot use account #{self.index}"
                )
            self._address = accounts[self.index]
        return self._address

    def get_balance(self):
        return self.w3.eth.get_balance(self.address)

    def send(self, constructor):
        return constructor.transact({"from": self.address})


class LocalKeySigner:
    """Account whose key is held locally; transactions are signed before sending"""

    def __init__(self, w3, private_key, chain_id=None):
        self.w3 = w3
        self.account = Account.from_key(private_key)
        self.chain_id = chain_id

    @property
    def address(self):
        return self.account.address

    def get_balance(self):
        return self.w3.eth.get_balance(self.address)

    def send(self, constructor):
        params = {
            "from": self.address,
            "nonce": self.w3.eth.get_transaction_count(self.address),
        }
        if self.chain_id is not None:
            params["chainId"] = self.chain_id

        tx = constructor.build_transaction(params)
        signed = self.account.sign_transaction(tx)
        return self.w3.eth.send_raw_transaction(signed.raw_transaction)


@dataclass
class DeploymentContext:
    """Everything a deployment run talks to"""

    network: str
    signer: object
    registry: ArtifactRegistry
    store: object
    explorer_url: Optional[str] = None


def connect(settings):
    """
    Build the deployment context for ``settings``

    No RPC request is made here; the first one happens when the recorder
    asks the signer for its address.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": f"voting-deployer/{__version__}"})

    provider = HTTPProvider(
        settings.rpc_url,
        request_kwargs={"timeout": settings.rpc_timeout},
        session=session,
        # Every RPC request is attempted once
        exception_retry_configuration=None,
    )
    w3 = Web3(provider)

    if settings.private_key:
        signer = LocalKeySigner(w3, settings.private_key, chain_id=settings.chain_id)
    else:
        signer = NodeAccountSigner(w3)

    registry = ArtifactRegistry(settings.artifacts_dir, w3, poll_interval=settings.poll_interval)

    return DeploymentContext(
        network=settings.network,
        signer=signer,
        registry=registry,
        store=RecordStore(settings.deployments_dir),
        explorer_url=settings.explorer,
    )
