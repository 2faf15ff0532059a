"""
Deploy a contract and record the deployment

deploy() runs the whole sequence once: resolve the artifact, submit the
deployment, wait for it to be mined, read back a few public fields and
write a JSON record named after the network. Nothing is retried; the first
failure aborts the run, and a record is only written when every earlier
step succeeded.

A run interrupted after confirmation (or failing verification) leaves the
contract on chain without a local record. That is accepted: the ledger is
the source of truth and the record can be rebuilt by hand.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from web3 import Web3

from voting_deployer.errors import DeploymentError, PersistenceError, VerificationError


@dataclass(frozen=True)
class DeploymentRecord:
    network: str
    contract_address: str
    transaction_hash: str
    election_name: str
    deployer: str
    deployment_time: str
    gas_used: str

    def to_dict(self):
        return {
            "network": self.network,
            "contractAddress": self.contract_address,
            "transactionHash": self.transaction_hash,
            "electionName": self.election_name,
            "deployer": self.deployer,
            "deploymentTime": self.deployment_time,
            "gasUsed": self.gas_used,
        }


@dataclass(frozen=True)
class Check:
    """A post-deploy read: contract function, expected value kind, display title"""

    function: str
    kind: str
    title: str


VOTING_SYSTEM_CHECKS = (
    Check("owner", "address", "Owner"),
    Check("electionName", "string", "Election Name"),
    Check("votingOpen", "bool", "Voting Status"),
    Check("candidateCount", "uint", "Total Candidates"),
    Check("totalVotes", "uint", "Total Votes"),
)


CHECK_KINDS = ("address", "bool", "uint", "string")


def _has_kind(kind, value):
    if kind == "address":
        return isinstance(value, str) and Web3.is_address(value)
    if kind == "bool":
        return isinstance(value, bool)
    if kind == "uint":
        return isinstance(value, int) and not isinstance(value, bool) and value >= 0
    if kind == "string":
        return isinstance(value, str)
    raise ValueError(f"Unknown check kind: {kind}")


@dataclass(frozen=True)
class StepEvent:
    step: str
    message: str
    details: dict = field(default_factory=dict)


class DeploymentObserver:
    """Receives progress events from deploy(); ignores them by default"""

    def on_step(self, event):
        pass


def _current_umask():
    mask = os.umask(0)
    os.umask(mask)
    return mask


class RecordStore:
    """Deployment records on disk, one file per network"""

    def __init__(self, root):
        self.root = Path(root)

    def path_for(self, network):
        if not network or network in (".", "..") or any(sep in network for sep in ("/", "\\")):
            raise PersistenceError(f"Invalid network name for a record file: {network!r}")
        return self.root / f"{network}_deployment.json"

    def save(self, record):
        """
        Write ``record``, replacing any earlier record for its network

        The file is swapped in with os.replace(), so readers see either the
        old record or the new one.
        """
        path = self.path_for(record.network)
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, indent=2)
                f.write("\n")
            # mkstemp creates 0600; records follow the umask like any other file
            os.chmod(tmp_name, 0o666 & ~_current_umask())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Cannot write deployment record {path}: {e}", cause=e) from e
        return path


@contextmanager
def _failing_as(error_cls, message):
    try:
        yield
    except DeploymentError:
        raise
    except Exception as e:
        raise error_cls(f"{message}: {e}", cause=e) from e


def _utc_timestamp():
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def deploy(artifact_name, constructor_args, context, *, label=None,
           checks=VOTING_SYSTEM_CHECKS, observer=None):
    """
    Deploy ``artifact_name`` to ``context.network`` and record it

    Returns the DeploymentRecord that was written. Raises DeploymentError,
    or one of ArtifactNotFoundError, VerificationError and PersistenceError.
    """
    observer = observer or DeploymentObserver()
    constructor_args = list(constructor_args)
    if label is None:
        label = str(constructor_args[0]) if constructor_args else artifact_name
    if not checks:
        raise VerificationError("At least one verification check is required")
    unknown = [c.function for c in checks if c.kind not in CHECK_KINDS]
    if unknown:
        raise VerificationError(
            f"Unknown check kind for {', '.join(unknown)}; expected one of {', '.join(CHECK_KINDS)}"
        )

    def emit(step, message, **details):
        observer.on_step(StepEvent(step, message, details))

    record_path = context.store.path_for(context.network)

    emit("start", f"Starting deployment of {artifact_name} contract...")

    # Step 1: Resolve the artifact
    factory = context.registry.get_factory(artifact_name, context.signer)
    emit("artifact", "Deployment details", artifact=artifact_name, label=label,
         network=context.network)

    # Step 2: Deployer account
    with _failing_as(DeploymentError, "Cannot query deployer account"):
        deployer = context.signer.address
        balance = context.signer.get_balance()
    emit("deployer", "Deployer account", address=deployer, balance=balance)

    # Step 3: Submit
    emit("submitting", f"Deploying {artifact_name} contract...")
    with _failing_as(DeploymentError, f"Deployment of {artifact_name} failed"):
        handle = factory.deploy(*constructor_args)

    # Step 4: Wait for confirmation
    with _failing_as(DeploymentError, f"Deployment {handle.transaction_hash} was not confirmed"):
        handle.wait_for_confirmation()
    emit("deployed", f"{artifact_name} deployed successfully!", address=handle.address,
         transaction_hash=handle.transaction_hash, gas=handle.gas_limit)

    # Step 5: Read back public fields
    values = {}
    for check in checks:
        with _failing_as(VerificationError, f"Verification read {check.function}() failed"):
            value = handle.call(check.function)
        if not _has_kind(check.kind, value):
            raise VerificationError(
                f"{check.function}() returned {value!r}, expected {check.kind}"
            )
        values[check.function] = value
    emit("verified", "Contract verification", values=values, checks=tuple(checks))

    # Step 6: Assemble and persist
    record = DeploymentRecord(
        network=context.network,
        contract_address=str(handle.address),
        transaction_hash=str(handle.transaction_hash),
        election_name=label,
        deployer=str(deployer),
        deployment_time=_utc_timestamp(),
        gas_used=str(handle.gas_limit),
    )
    context.store.save(record)
    emit("saved", "Deployment info saved", path=record_path, record=record)

    return record
