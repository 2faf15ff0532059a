__version__ = "0.1.0"

from voting_deployer.errors import (  # noqa: E402
    ArtifactNotFoundError,
    DeploymentError,
    PersistenceError,
    VerificationError,
)
from voting_deployer.recorder import (  # noqa: E402
    VOTING_SYSTEM_CHECKS,
    Check,
    DeploymentObserver,
    DeploymentRecord,
    RecordStore,
    StepEvent,
    deploy,
)
from voting_deployer.ledger import DeploymentContext, connect  # noqa: E402

__all__ = [
    "ArtifactNotFoundError",
    "Check",
    "DeploymentContext",
    "DeploymentError",
    "DeploymentObserver",
    "DeploymentRecord",
    "PersistenceError",
    "RecordStore",
    "StepEvent",
    "VOTING_SYSTEM_CHECKS",
    "VerificationError",
    "connect",
    "deploy",
]
