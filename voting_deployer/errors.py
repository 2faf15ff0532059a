"""Errors raised while deploying and recording a contract"""


class DeploymentError(Exception):
    """
    Deployment pipeline failure

    Raised when submission or confirmation fails, and the base class for
    every other failure of the pipeline. The underlying exception, when
    there is one, is kept on ``cause``.
    """

    def __init__(self, message, cause=None):
        super().__init__(message)
        self.cause = cause


class ArtifactNotFoundError(DeploymentError):
    """Named artifact is missing from the compiled output"""


class VerificationError(DeploymentError):
    """A post-deploy read failed or returned an unexpected value"""


class PersistenceError(DeploymentError):
    """Deployment record could not be written"""
