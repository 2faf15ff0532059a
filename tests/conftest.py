import pytest

from voting_deployer.errors import ArtifactNotFoundError
from voting_deployer.ledger import DeploymentContext
from voting_deployer.recorder import RecordStore

OWNER = "0x" + "f3" * 20
CONTRACT_ADDRESS = "0x" + "5f" * 20


class FakeHandle:
    """Deployed contract double; records every read"""

    def __init__(self, transaction_hash, address, gas_limit=3_000_000, values=None,
                 confirm_error=None, failing_reads=()):
        self.transaction_hash = transaction_hash
        self.address = None
        self.gas_limit = None
        self._address = address
        self._gas_limit = gas_limit
        self._confirm_error = confirm_error
        self._failing_reads = set(failing_reads)
        self.values = dict(values or {})
        self.calls = []
        self.confirmed = False

    def wait_for_confirmation(self):
        if self._confirm_error is not None:
            raise self._confirm_error
        self.confirmed = True
        self.address = self._address
        self.gas_limit = self._gas_limit

    def call(self, function_name):
        self.calls.append(function_name)
        if function_name in self._failing_reads:
            raise ValueError(f"execution reverted: {function_name}")
        return self.values[function_name]


class FakeFactory:
    def __init__(self, handle=None, deploy_error=None):
        self.handle = handle
        self.deploy_error = deploy_error
        self.deploy_calls = []

    def deploy(self, *args):
        self.deploy_calls.append(args)
        if self.deploy_error is not None:
            raise self.deploy_error
        return self.handle


class FakeRegistry:
    def __init__(self, factories):
        self.factories = factories
        self.lookups = []

    def get_factory(self, name, signer):
        self.lookups.append(name)
        if name not in self.factories:
            raise ArtifactNotFoundError(f"Artifact for contract '{name}' not found")
        return self.factories[name]


class FakeSigner:
    def __init__(self, address=OWNER, balance=10_000 * 10**18):
        self.address = address
        self.balance = balance
        self.balance_queries = 0

    def get_balance(self):
        self.balance_queries += 1
        return self.balance


class RecordingObserver:
    def __init__(self):
        self.events = []

    def on_step(self, event):
        self.events.append(event)

    @property
    def steps(self):
        return [e.step for e in self.events]


def voting_values(election_name="Presidential Election 2024"):
    return {
        "owner": OWNER,
        "electionName": election_name,
        "votingOpen": False,
        "candidateCount": 0,
        "totalVotes": 0,
    }


def make_handle(n=1, **kwargs):
    kwargs.setdefault("values", voting_values())
    return FakeHandle(
        transaction_hash="0x" + f"{n:02x}" * 32,
        address=CONTRACT_ADDRESS,
        **kwargs,
    )


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def deployments_dir(tmp_path):
    return tmp_path / "deployments"


@pytest.fixture
def make_context(signer, deployments_dir):
    def _make(factory, network="localhost"):
        registry = FakeRegistry({"VotingSystem": factory})
        return DeploymentContext(
            network=network,
            signer=signer,
            registry=registry,
            store=RecordStore(deployments_dir),
        )
    return _make


@pytest.fixture
def observer():
    return RecordingObserver()
