"""
Storyforge Server

FastAPI server exposing the transcript pipeline to the dashboard and to
Notion automations.

Endpoints:
- GET  /api/health: Health check
- GET  /api/transcripts: Recent transcripts with content
- POST /api/process-transcript: Extract stories from supplied text
- POST /api/auto-process-all: Run a pass over the newest 50 transcripts
- POST /api/webhook/notion-transcript: New transcript notification
- POST /api/deploy-to-jira: Create a Jira issue from a story
- POST /api/test-slack: Send a webhook connection test
- GET  /api/scheduler: Scheduler state

Pipeline:
1. Fetch transcripts from Notion
2. Skip transcripts already processed or created before the cutoff
3. Extract stories with the LLM
4. Post each story to Slack
5. Record the transcript in the ledger
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..common.config import (
    StoryforgeConfig,
    ensure_directories,
    load_config,
    require_llm,
    require_notion,
)
from ..common.errors import ConfigurationError, TransientExternalError, ValidationError
from ..common.llm_client import LLMClient
from ..common.rate_limiter import RateLimiter
from ..common.schemas import WorkItem
from .documents import NotionDocumentSource
from .jira_deployer import JiraConfig, JiraDeployer
from .ledger import ProcessingLedger
from .notifier import SlackNotifier
from .processor import TranscriptPipeline
from .scheduler import Scheduler, SchedulerState
from .story_extractor import StoryExtractor, load_product_context

logger = logging.getLogger("storyforge.pipeline.server")

# Page sizes per entry point
TRANSCRIPTS_PAGE_SIZE = 20
AUTO_PROCESS_PAGE_SIZE = 50
WEBHOOK_PAGE_SIZE = 10


# Global state
config: Optional[StoryforgeConfig] = None
pipeline: Optional[TranscriptPipeline] = None
scheduler: Optional[Scheduler] = None
deployer: Optional[JiraDeployer] = None


def build_pipeline(cfg: StoryforgeConfig) -> TranscriptPipeline:
    """Wire the pipeline components from configuration"""
    llm = LLMClient.from_config(cfg.llm)
    extractor = StoryExtractor(
        llm,
        product_context=load_product_context(cfg.product_context_path),
        temperature=cfg.llm.temperature,
        max_tokens=cfg.llm.max_tokens,
    )
    notifier = SlackNotifier(limiter=RateLimiter(cfg.pacing.notifications_per_second))
    return TranscriptPipeline(
        source=NotionDocumentSource(cfg.notion.token, cfg.notion.database_id),
        ledger=ProcessingLedger(cfg.ledger_path),
        extractor=extractor,
        notifier=notifier,
        default_webhook_url=cfg.slack.webhook_url,
        document_limiter=RateLimiter(cfg.pacing.documents_per_second),
    )


def check_pass_config() -> None:
    """Raise ConfigurationError unless a pass can reach Notion and the model"""
    if config is None or pipeline is None:
        raise ConfigurationError("Server not initialized")
    require_notion(config)
    require_llm(config)
    pipeline.preflight()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, pipeline, scheduler, deployer

    logger.info("Starting up...")
    ensure_directories()
    config = load_config()
    logger.info(
        "Environment loaded: notion_token=%s notion_db=%s llm=%s slack_webhook=%s auto_processing=%s",
        bool(config.notion.token), bool(config.notion.database_id),
        bool(config.llm.api_key), bool(config.slack.webhook_url), config.scheduler.enabled,
    )

    pipeline = build_pipeline(config)
    deployer = JiraDeployer()
    scheduler = Scheduler(
        pipeline,
        SchedulerState(),
        interval_seconds=config.scheduler.interval_seconds,
        page_size=config.scheduler.page_size,
        preflight=check_pass_config,
    )

    if config.scheduler.enabled:
        scheduler.start()
    else:
        logger.info("Auto-processing disabled. Set ENABLE_AUTO_PROCESSING=true to enable.")

    logger.info("Ready to receive requests")

    yield

    logger.info("Shutting down...")
    await scheduler.stop()


app = FastAPI(
    title="Storyforge",
    description="Meeting transcripts to development stories",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# Error mapping
# =============================================================================

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(TransientExternalError)
async def external_error_handler(request: Request, exc: TransientExternalError):
    logger.error("External service error: %s", exc)
    return JSONResponse(status_code=502, content={"error": str(exc), "service": exc.service})


# =============================================================================
# Request/Response Models
# =============================================================================

class ProcessTranscriptRequest(BaseModel):
    """On-demand extraction request"""
    transcript: str = ""
    title: str = "Untitled Meeting"
    slack_webhook: Optional[str] = Field(default=None, alias="slackWebhook")
    transcript_id: Optional[str] = Field(default=None, alias="transcriptId")
    share_url: str = Field(default="", alias="fathomShareUrl")


class AutoProcessRequest(BaseModel):
    """Batch processing request"""
    slack_webhook: Optional[str] = Field(default=None, alias="slackWebhook")


class NotionWebhookRequest(BaseModel):
    """Notion automation payload"""
    page_id: Optional[str] = Field(default=None, alias="pageId")


class JiraConfigModel(BaseModel):
    url: str
    email: str
    token: str
    project_key: str = Field(alias="projectKey")


class DeployRequest(BaseModel):
    """Jira deployment request"""
    story: WorkItem
    jira_config: JiraConfigModel = Field(alias="jiraConfig")


class SlackTestRequest(BaseModel):
    webhook_url: str = Field(default="", alias="webhookUrl")


def _require_pipeline() -> TranscriptPipeline:
    if not pipeline:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


def _require_scheduler() -> Scheduler:
    if not scheduler:
        raise HTTPException(status_code=503, detail="Scheduler not initialized")
    return scheduler


def _pass_already_running() -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"success": False, "error": "A processing pass is already running"},
    )


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "storyforge",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "initialized": pipeline is not None,
        "autoDetection": {
            "enabled": bool(config and config.scheduler.enabled),
            "llmConfigured": bool(config and config.llm.api_key),
            "slackConfigured": bool(config and config.slack.webhook_url),
            "ledger": pipeline.ledger.get_stats() if pipeline else None,
        },
    }


@app.get("/api/transcripts")
async def list_transcripts() -> List[Dict[str, Any]]:
    """Recent transcripts that have enough content to process"""
    p = _require_pipeline()
    require_notion(config)
    return await p.list_transcripts(TRANSCRIPTS_PAGE_SIZE)


@app.post("/api/process-transcript")
async def process_transcript(request: ProcessTranscriptRequest):
    """Extract stories from caller-supplied transcript text"""
    p = _require_pipeline()
    require_llm(config)

    result = await p.process_transcript(
        request.transcript,
        request.title,
        webhook_url=request.slack_webhook,
        transcript_id=request.transcript_id,
        share_url=request.share_url,
    )
    if result.status == "already_processed":
        return {
            "alreadyProcessed": True,
            "message": f"Transcript {request.transcript_id} was already processed",
            "stories": [],
        }
    if result.error and not result.stories:
        raise HTTPException(status_code=500, detail=f"Failed to process transcript: {result.error}")

    webhook = request.slack_webhook or p.default_webhook_url
    return {
        "stories": [s.model_dump(mode="json", by_alias=True) for s in result.stories],
        "slackSummary": {
            "enabled": bool(webhook),
            "totalStories": len(result.stories),
            "successfulNotifications": result.notified,
            "failedNotifications": result.failed_notifications,
            "results": [
                {
                    "storyId": s.id,
                    "storyTitle": s.title,
                    "slackStatus": s.notification_status.model_dump(mode="json", by_alias=True)
                    if s.notification_status else None,
                }
                for s in result.stories
            ],
        },
    }


@app.post("/api/auto-process-all")
async def auto_process_all(request: AutoProcessRequest):
    """Run a pass over the newest transcripts"""
    s = _require_scheduler()
    require_notion(config)
    require_llm(config)
    summary = await s.run_pass(AUTO_PROCESS_PAGE_SIZE, request.slack_webhook)
    if summary is None:
        return _pass_already_running()
    return {"success": True, **summary.to_dict()}


@app.post("/api/webhook/notion-transcript")
async def notion_transcript_webhook(request: NotionWebhookRequest):
    """Process one new transcript, or every new one when no page ID is given"""
    p = _require_pipeline()
    require_notion(config)
    require_llm(config)
    logger.info("Notion webhook received - new transcript detected")

    if request.page_id:
        result = await p.process_document(request.page_id)
        return {"success": True, **result}

    summary = await _require_scheduler().run_pass(WEBHOOK_PAGE_SIZE)
    if summary is None:
        return _pass_already_running()
    return {
        "success": True,
        "message": "Webhook processing complete",
        "transcriptsProcessed": summary.processed,
        "storiesGenerated": summary.stories,
        "stories": [
            s.model_dump(mode="json", by_alias=True)
            for r in summary.results for s in r.stories
        ],
    }


@app.post("/api/deploy-to-jira")
async def deploy_to_jira(request: DeployRequest):
    """Create a Jira issue for one story"""
    if not deployer:
        raise HTTPException(status_code=503, detail="Deployer not initialized")

    jira = JiraConfig(
        url=request.jira_config.url,
        email=request.jira_config.email,
        token=request.jira_config.token,
        project_key=request.jira_config.project_key,
    )
    result = await deployer.deploy(request.story, jira)
    if not result.success:
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "error": result.error_detail,
                "errorKind": result.error_kind,
                "failedStep": result.failed_step,
            },
        )
    return {
        "success": True,
        "key": result.issue_key,
        "url": result.issue_url,
        "id": result.issue_id,
    }


@app.post("/api/test-slack")
async def test_slack(request: SlackTestRequest):
    """Send a connection-test message to a Slack webhook"""
    p = _require_pipeline()
    if not request.webhook_url:
        raise ValidationError("Webhook URL required")

    result = await p.notifier.send_test(request.webhook_url)
    if not result.success:
        return JSONResponse(
            status_code=result.status_code or 502,
            content={"success": False, "error": result.error_detail, "status": result.status_code},
        )
    return {
        "success": True,
        "message": "Slack webhook test successful! Check your Slack channel.",
        "status": result.status_code,
    }


@app.get("/api/scheduler")
async def scheduler_state():
    """Scheduler state"""
    return _require_scheduler().state.to_dict()


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Storyforge server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    cfg = load_config()
    port = cfg.server.port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "storyforge.pipeline.server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
