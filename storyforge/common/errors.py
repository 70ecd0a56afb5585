"""
Error taxonomy for Storyforge.

Configuration problems surface immediately; everything else is caught at
the scope of one document or one work item and reported in a summary.
"""

from typing import Optional


class StoryforgeError(Exception):
    """Base exception for all Storyforge errors."""


class ConfigurationError(StoryforgeError):
    """A required credential or identifier is missing. Not retryable."""


class ValidationError(StoryforgeError):
    """Input rejected before any network call was made."""


class TransientExternalError(StoryforgeError):
    """An external service answered with a failure or could not be reached."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code
        self.body = body


class MalformedModelOutput(StoryforgeError):
    """The generative backend returned something that is not a JSON object."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class DeploymentError(StoryforgeError):
    """Base class for issue-tracker deployment failures."""

    step = "deploy"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def kind(self) -> str:
        return type(self).__name__


class MisconfiguredEndpoint(DeploymentError):
    """The tracker URL answered with an HTML page instead of the REST API."""
    step = "credential_probe"


class AuthenticationFailed(DeploymentError):
    """The tracker rejected the email/token pair."""
    step = "credential_probe"


class EndpointNotFound(DeploymentError):
    """The tracker REST endpoint does not exist at the given base URL."""
    step = "credential_probe"


class UnknownConnectionError(DeploymentError):
    """The credential probe failed for a reason we do not classify."""
    step = "credential_probe"


class ProjectNotFoundOrNoAccess(DeploymentError):
    """The project key does not exist or the account cannot see it."""
    step = "project_probe"


class TicketCreationFailed(DeploymentError):
    """The tracker refused to create the ticket."""
    step = "create_issue"
