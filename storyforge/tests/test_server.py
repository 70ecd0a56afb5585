"""Tests for the HTTP surface."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from storyforge.common.config import StoryforgeConfig
from storyforge.common.errors import TransientExternalError, ValidationError
from storyforge.common.schemas import NotificationResult, WorkItem
from storyforge.pipeline import server
from storyforge.pipeline.jira_deployer import DeploymentResult
from storyforge.pipeline.processor import DocumentResult, PassSummary
from storyforge.pipeline.scheduler import Scheduler, SchedulerState

WEBHOOK = "https://hooks.slack.com/services/T000/B000/XXXX"


def _config(complete=True):
    cfg = StoryforgeConfig()
    if complete:
        cfg.notion.token = "secret"
        cfg.notion.database_id = "db-1"
        cfg.llm.openai_api_key = "sk-test"
    return cfg


@pytest.fixture
def app_state(monkeypatch):
    pipeline = MagicMock()
    pipeline.default_webhook_url = ""
    pipeline.ledger.get_stats.return_value = {"processed": 0}
    pipeline.run_pass = AsyncMock(return_value=PassSummary(analyzed=2, processed=1, stories=3))
    pipeline.process_document = AsyncMock(return_value={"alreadyProcessed": True})
    pipeline.process_transcript = AsyncMock()
    pipeline.list_transcripts = AsyncMock(return_value=[{"id": "doc-1"}])
    pipeline.notifier.send_test = AsyncMock()
    deployer = MagicMock()
    deployer.deploy = AsyncMock()

    monkeypatch.setattr(server, "config", _config())
    monkeypatch.setattr(server, "pipeline", pipeline)
    monkeypatch.setattr(server, "deployer", deployer)
    monkeypatch.setattr(server, "scheduler", Scheduler(pipeline, SchedulerState()))
    return pipeline, deployer


@pytest.fixture
def client(app_state):
    # No context manager: the lifespan (real config, real clients) is not run
    return TestClient(server.app)


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["initialized"] is True
        assert body["autoDetection"]["llmConfigured"] is True


class TestTranscripts:
    def test_list(self, client):
        assert client.get("/api/transcripts").json() == [{"id": "doc-1"}]

    def test_missing_notion_config(self, client, monkeypatch):
        monkeypatch.setattr(server, "config", _config(complete=False))
        response = client.get("/api/transcripts")
        assert response.status_code == 400
        assert "NOTION_TOKEN" in response.json()["error"]

    def test_notion_outage(self, client, app_state):
        pipeline, _ = app_state
        pipeline.list_transcripts.side_effect = TransientExternalError("notion", "timeout")
        response = client.get("/api/transcripts")
        assert response.status_code == 502
        assert response.json()["service"] == "notion"


class TestProcessTranscript:
    def test_returns_stories_and_slack_summary(self, client, app_state):
        pipeline, _ = app_state
        story = WorkItem(id="story-1", title="Add CSV export")
        story.attach_notification(NotificationResult(success=True, status_code=200))
        pipeline.process_transcript.return_value = DocumentResult(
            document_id="", title="Sync", status="processed", stories=[story], notified=1,
        )

        response = client.post("/api/process-transcript", json={
            "transcript": "long enough " * 20,
            "title": "Sync",
            "slackWebhook": WEBHOOK,
            "transcriptId": "doc-7",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["stories"][0]["title"] == "Add CSV export"
        assert "acceptanceCriteria" in body["stories"][0]
        assert body["slackSummary"]["enabled"] is True
        assert body["slackSummary"]["successfulNotifications"] == 1
        assert body["slackSummary"]["results"][0]["slackStatus"]["success"] is True
        kwargs = pipeline.process_transcript.call_args.kwargs
        assert kwargs["transcript_id"] == "doc-7"
        assert kwargs["webhook_url"] == WEBHOOK

    def test_already_processed_transcript(self, client, app_state):
        pipeline, _ = app_state
        pipeline.process_transcript.return_value = DocumentResult(
            document_id="doc-7", title="Sync", status="already_processed",
        )

        response = client.post("/api/process-transcript", json={
            "transcript": "x" * 200, "transcriptId": "doc-7",
        })

        assert response.status_code == 200
        assert response.json()["alreadyProcessed"] is True
        assert response.json()["stories"] == []

    def test_short_transcript_is_400(self, client, app_state):
        pipeline, _ = app_state
        pipeline.process_transcript.side_effect = ValidationError("Transcript too short or missing")
        response = client.post("/api/process-transcript", json={"transcript": "hi"})
        assert response.status_code == 400

    def test_extraction_failure_is_500(self, client, app_state):
        pipeline, _ = app_state
        pipeline.process_transcript.return_value = DocumentResult(
            document_id="", title="Sync", status="no_stories", error="MalformedModelOutput: bad",
        )
        response = client.post("/api/process-transcript", json={"transcript": "x" * 200})
        assert response.status_code == 500

    def test_missing_llm_key_is_400(self, client, monkeypatch):
        cfg = _config()
        cfg.llm.openai_api_key = ""
        monkeypatch.setattr(server, "config", cfg)
        response = client.post("/api/process-transcript", json={"transcript": "x" * 200})
        assert response.status_code == 400
        assert "API key" in response.json()["error"]


class TestBatchEndpoints:
    def test_auto_process_all(self, client, app_state):
        pipeline, _ = app_state
        response = client.post("/api/auto-process-all", json={"slackWebhook": WEBHOOK})
        assert response.status_code == 200
        assert response.json()["transcriptsProcessed"] == 1
        pipeline.run_pass.assert_awaited_once_with(50, WEBHOOK)

    def test_webhook_with_page_id(self, client, app_state):
        pipeline, _ = app_state
        response = client.post("/api/webhook/notion-transcript", json={"pageId": "page-1"})
        assert response.json() == {"success": True, "alreadyProcessed": True}
        pipeline.process_document.assert_awaited_once_with("page-1")

    def test_webhook_without_page_id(self, client, app_state):
        pipeline, _ = app_state
        response = client.post("/api/webhook/notion-transcript", json={})
        body = response.json()
        assert body["transcriptsProcessed"] == 1
        assert body["storiesGenerated"] == 3
        pipeline.run_pass.assert_awaited_once_with(10, None)

    def test_on_demand_pass_updates_scheduler_state(self, client):
        client.post("/api/auto-process-all", json={})
        assert client.get("/api/scheduler").json()["runCount"] == 1

    def test_overlapping_pass_is_409(self, client, app_state):
        pipeline, _ = app_state
        server.scheduler.state.running = True

        response = client.post("/api/auto-process-all", json={})
        webhook = client.post("/api/webhook/notion-transcript", json={})

        assert response.status_code == 409
        assert webhook.status_code == 409
        assert server.scheduler.state.skipped_overlaps == 2
        pipeline.run_pass.assert_not_awaited()


class TestDeployToJira:
    PAYLOAD = {
        "story": {"id": "story-1", "title": "Add CSV export", "priority": "High"},
        "jiraConfig": {
            "url": "acme.atlassian.net",
            "email": "pm@acme.test",
            "token": "t",
            "projectKey": "PROJ",
        },
    }

    def test_success(self, client, app_state):
        _, deployer = app_state
        deployer.deploy.return_value = DeploymentResult(
            success=True, issue_key="PROJ-1", issue_url="https://acme.atlassian.net/browse/PROJ-1", issue_id="1",
        )

        response = client.post("/api/deploy-to-jira", json=self.PAYLOAD)

        assert response.json()["key"] == "PROJ-1"
        item, jira = deployer.deploy.call_args.args
        assert item.title == "Add CSV export"
        assert jira.project_key == "PROJ"

    def test_failure_reports_kind(self, client, app_state):
        _, deployer = app_state
        deployer.deploy.return_value = DeploymentResult(
            success=False, error_kind="AuthenticationFailed",
            error_detail="Jira authentication failed", failed_step="credential_probe",
        )

        response = client.post("/api/deploy-to-jira", json=self.PAYLOAD)

        assert response.status_code == 502
        assert response.json()["errorKind"] == "AuthenticationFailed"
        assert response.json()["failedStep"] == "credential_probe"


class TestSlackAndScheduler:
    def test_test_slack_requires_url(self, client):
        assert client.post("/api/test-slack", json={}).status_code == 400

    def test_test_slack_success(self, client, app_state):
        pipeline, _ = app_state
        pipeline.notifier.send_test.return_value = NotificationResult(success=True, status_code=200)
        response = client.post("/api/test-slack", json={"webhookUrl": WEBHOOK})
        assert response.json()["success"] is True

    def test_test_slack_rejected_webhook(self, client, app_state):
        pipeline, _ = app_state
        pipeline.notifier.send_test.return_value = NotificationResult(
            success=False, status_code=404, error_detail="HTTP 404: no_service",
        )
        response = client.post("/api/test-slack", json={"webhookUrl": WEBHOOK})
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_scheduler_state(self, client):
        body = client.get("/api/scheduler").json()
        assert body["running"] is False
        assert body["runCount"] == 0
