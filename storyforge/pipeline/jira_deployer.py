"""
Jira Deployer

Creates a Jira issue from a work item. Three steps, each short-circuiting
the deployment on failure:

1. Credential probe:  GET  {base}/rest/api/3/myself
2. Project probe:     GET  {base}/rest/api/3/project/{key}
3. Issue creation:    POST {base}/rest/api/3/issue

No step is retried. Credentials are supplied per call, never from the
environment.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..common.adf import text_to_adf
from ..common.errors import (
    AuthenticationFailed,
    DeploymentError,
    EndpointNotFound,
    MisconfiguredEndpoint,
    ProjectNotFoundOrNoAccess,
    TicketCreationFailed,
    UnknownConnectionError,
    ValidationError,
)
from ..common.schemas import Priority, WorkItem, render_description_text

logger = logging.getLogger("storyforge.pipeline.jira_deployer")

USER_AGENT = "Storyforge/0.1"
ISSUE_TYPE = "Story"
MAX_ERROR_BODY = 500


@dataclass
class JiraConfig:
    """Per-call issue tracker settings"""
    url: str
    email: str
    token: str
    project_key: str

    def validate(self) -> None:
        missing = [name for name in ("url", "email", "token", "project_key")
                   if not (getattr(self, name) or "").strip()]
        if missing:
            raise ValidationError(f"Missing Jira settings: {', '.join(missing)}")


@dataclass
class DeploymentResult:
    """Outcome of one (work item, issue tracker) attempt"""
    success: bool
    issue_key: Optional[str] = None
    issue_url: Optional[str] = None
    issue_id: Optional[str] = None
    error_kind: Optional[str] = None
    error_detail: Optional[str] = None
    failed_step: Optional[str] = None

    @classmethod
    def from_error(cls, error: DeploymentError) -> "DeploymentResult":
        return cls(
            success=False,
            error_kind=error.kind,
            error_detail=str(error),
            failed_step=error.step,
        )


def normalize_base_url(url: str) -> str:
    """Trim, default to https, and drop a trailing slash"""
    clean = url.strip()
    if not clean.startswith("http"):
        clean = "https://" + clean
    return clean.rstrip("/")


def basic_auth_header(email: str, token: str) -> str:
    raw = f"{email}:{token}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def build_issue_payload(item: WorkItem, project_key: str) -> Dict[str, Any]:
    """Build the issue-creation body for a work item"""
    fields: Dict[str, Any] = {
        "project": {"key": project_key},
        "summary": item.title,
        "description": text_to_adf(render_description_text(item)),
        "issuetype": {"name": ISSUE_TYPE},
    }
    priority = Priority.parse(item.priority)
    if priority is not None:
        fields["priority"] = {"name": priority.value}
    return {"fields": fields}


def _is_html(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    if "text/html" in content_type:
        return True
    return response.text.lstrip()[:15].lower().startswith(("<!doctype html", "<html"))


def _body(response: httpx.Response) -> str:
    return response.text[:MAX_ERROR_BODY]


class JiraDeployer:
    """
    Deploys work items to Jira Cloud.

    Args:
        client: httpx.AsyncClient to use (tests pass one built on
            httpx.MockTransport)
        timeout: Per-request timeout in seconds
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 15.0):
        self._client = client
        self._timeout = timeout

    async def deploy(self, item: WorkItem, config: JiraConfig) -> DeploymentResult:
        """Run the three-step protocol; never raises for tracker failures.

        Raises:
            ValidationError: if the config is incomplete or the item is
                already deployed
        """
        config.validate()
        if item.is_deployed:
            raise ValidationError(f"Work item {item.id} is already deployed as {item.deployed_issue_key}")

        logger.info("Attempting Jira deployment for: %s", item.title)
        base = normalize_base_url(config.url)
        headers = {
            "Authorization": basic_auth_header(config.email, config.token),
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

        try:
            if self._client is not None:
                result = await self._run(self._client, base, headers, item, config.project_key)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
                    result = await self._run(client, base, headers, item, config.project_key)
        except DeploymentError as e:
            logger.error("Jira deployment failed at %s (%s): %s", e.step, e.kind, e)
            return DeploymentResult.from_error(e)

        item.mark_deployed(result.issue_key)
        logger.info("Deployed %s as %s", item.id, result.issue_key)
        return result

    async def _run(
        self,
        client: httpx.AsyncClient,
        base: str,
        headers: Dict[str, str],
        item: WorkItem,
        project_key: str,
    ) -> DeploymentResult:
        await self.probe_credentials(client, base, headers)
        await self.probe_project(client, base, headers, project_key)
        return await self.create_issue(client, base, headers, item, project_key)

    async def probe_credentials(self, client: httpx.AsyncClient, base: str, headers: Dict[str, str]) -> None:
        try:
            response = await client.get(f"{base}/rest/api/3/myself", headers=headers)
        except httpx.HTTPError as e:
            raise UnknownConnectionError(f"Could not reach Jira at {base}: {e}")

        if _is_html(response):
            raise MisconfiguredEndpoint(
                f"Jira URL returned an HTML page (HTTP {response.status_code}); "
                "check the site URL, e.g. https://your-domain.atlassian.net",
                response.status_code,
            )
        if response.status_code == 401:
            raise AuthenticationFailed(
                "Jira authentication failed - check the email and API token", 401
            )
        if response.status_code == 404:
            raise EndpointNotFound(f"Jira REST API not found at {base}", 404)
        if not response.is_success:
            raise UnknownConnectionError(
                f"Jira credential check failed: HTTP {response.status_code}: {_body(response)}",
                response.status_code,
            )

    async def probe_project(
        self,
        client: httpx.AsyncClient,
        base: str,
        headers: Dict[str, str],
        project_key: str,
    ) -> None:
        try:
            response = await client.get(f"{base}/rest/api/3/project/{project_key}", headers=headers)
        except httpx.HTTPError as e:
            raise UnknownConnectionError(f"Could not reach Jira at {base}: {e}")

        if response.status_code == 404:
            raise ProjectNotFoundOrNoAccess(
                f"Project {project_key} not found or this account has no access", 404
            )
        if not response.is_success:
            raise UnknownConnectionError(
                f"Jira project check failed: HTTP {response.status_code}: {_body(response)}",
                response.status_code,
            )

    async def create_issue(
        self,
        client: httpx.AsyncClient,
        base: str,
        headers: Dict[str, str],
        item: WorkItem,
        project_key: str,
    ) -> DeploymentResult:
        payload = build_issue_payload(item, project_key)
        try:
            response = await client.post(f"{base}/rest/api/3/issue", headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise TicketCreationFailed(f"Ticket creation failed: {e}")

        if not response.is_success:
            raise TicketCreationFailed(
                f"Ticket creation failed: HTTP {response.status_code}: {_body(response)}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise TicketCreationFailed(f"Ticket creation returned invalid JSON: {_body(response)}")

        key = data.get("key")
        if not key:
            raise TicketCreationFailed(f"Ticket creation response has no key: {_body(response)}")

        return DeploymentResult(
            success=True,
            issue_key=key,
            issue_url=f"{base}/browse/{key}",
            issue_id=str(data.get("id", "")),
        )
