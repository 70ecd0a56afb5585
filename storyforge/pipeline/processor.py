"""
Transcript Pipeline

fetch -> filter by ledger -> flatten -> extract -> notify -> mark processed

Every entry point returns a summary instead of raising on partial failure.
Only missing configuration (checked before a pass starts) is raised.

Documents are handled one at a time; notifications for one document are
sent one at a time. All ledger writes go through one asyncio lock so the
scheduler, webhooks and on-demand calls cannot interleave a
check-then-mark on the same document.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..common.errors import ConfigurationError, StoryforgeError, ValidationError
from ..common.rate_limiter import RateLimiter
from ..common.schemas import WorkItem
from .content_extractor import extract_text, find_share_links
from .documents import Document, NotionDocumentSource
from .ledger import ProcessingLedger
from .notifier import SlackNotifier
from .story_extractor import MIN_TRANSCRIPT_CHARS, ExtractionOutcome, StoryExtractor

logger = logging.getLogger("storyforge.pipeline.processor")


@dataclass
class DocumentResult:
    """What happened to one document during a pass"""
    document_id: str
    title: str
    status: str  # processed, no_stories, insufficient, failed, already_processed
    word_count: int = 0
    stories: List[WorkItem] = field(default_factory=list)
    notified: int = 0
    failed_notifications: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentId": self.document_id,
            "title": self.title,
            "status": self.status,
            "wordCount": self.word_count,
            "storyCount": len(self.stories),
            "stories": [s.model_dump(mode="json", by_alias=True) for s in self.stories],
            "notified": self.notified,
            "failedNotifications": self.failed_notifications,
            "error": self.error,
        }


@dataclass
class PassSummary:
    """Aggregate result of one pipeline pass"""
    analyzed: int = 0
    processed: int = 0
    skipped: int = 0
    stories: int = 0
    notified: int = 0
    failed_notifications: int = 0
    notifications_enabled: bool = False
    errors: List[Dict[str, str]] = field(default_factory=list)
    results: List[DocumentResult] = field(default_factory=list)

    def add(self, result: DocumentResult) -> None:
        self.results.append(result)
        if result.status == "processed":
            self.processed += 1
        self.stories += len(result.stories)
        self.notified += result.notified
        self.failed_notifications += result.failed_notifications
        if result.error:
            self.errors.append({"documentId": result.document_id, "error": result.error})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcriptsAnalyzed": self.analyzed,
            "transcriptsProcessed": self.processed,
            "transcriptsSkipped": self.skipped,
            "totalStories": self.stories,
            "slackSummary": {
                "enabled": self.notifications_enabled,
                "successfulNotifications": self.notified,
                "failedNotifications": self.failed_notifications,
                "totalNotifications": self.notified + self.failed_notifications,
            },
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
        }


class TranscriptPipeline:
    """
    Owns one pipeline pass end to end.

    Args:
        source: Transcript database reader
        ledger: Processing ledger (dedup + cutoff)
        extractor: LLM story extractor
        notifier: Slack notifier
        default_webhook_url: Used when a call does not name a webhook
        document_limiter: Pacing between documents that reached the model
    """

    def __init__(
        self,
        source: NotionDocumentSource,
        ledger: ProcessingLedger,
        extractor: StoryExtractor,
        notifier: SlackNotifier,
        default_webhook_url: str = "",
        document_limiter: Optional[RateLimiter] = None,
    ):
        self.source = source
        self.ledger = ledger
        self.extractor = extractor
        self.notifier = notifier
        self.default_webhook_url = default_webhook_url
        self._document_limiter = document_limiter or RateLimiter.from_interval(2.0)
        self._ledger_lock = asyncio.Lock()

    def _webhook(self, webhook_url: Optional[str]) -> str:
        return webhook_url or self.default_webhook_url

    def preflight(self) -> None:
        """Raise ConfigurationError if a pass could not reach the model"""
        if not self.extractor.is_available:
            raise ConfigurationError("LLM client is not available")

    async def _extract(self, text: str, title: str, document_id: Optional[str], share_url: str) -> ExtractionOutcome:
        # The LLM SDKs are blocking; keep the event loop free while they run
        return await asyncio.to_thread(self.extractor.extract, text, title, document_id, share_url)

    async def _notify(self, result: DocumentResult, webhook_url: str) -> None:
        if not webhook_url or not result.stories:
            return
        try:
            statuses = await self.notifier.dispatch(result.stories, webhook_url)
        except ValidationError as e:
            logger.warning("Notifications skipped for %s: %s", result.title, e)
            result.failed_notifications += len(result.stories)
            result.error = result.error or str(e)
            return
        result.notified += sum(1 for s in statuses if s.success)
        result.failed_notifications += sum(1 for s in statuses if not s.success)

    async def _process_document(self, document: Document, webhook_url: str) -> DocumentResult:
        """Flatten, extract, notify, mark. Caller holds the ledger lock."""
        result = DocumentResult(document_id=document.id, title=document.title, status="failed")
        try:
            await self.source.load(document)
            extracted = extract_text(document.id, document.raw_blocks)
            result.word_count = extracted.word_count

            if not extracted.is_sufficient:
                logger.info("Transcript too short: %s (%d words)", document.title, extracted.word_count)
                result.status = "insufficient"
                return result

            await self._document_limiter.acquire()
            share_url = document.share_url or extracted.share_url
            outcome = await self._extract(extracted.text, document.title, document.id, share_url)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("Error processing %s: %s", document.title, e)
            result.error = str(e)
            return result

        if outcome.error:
            result.error = outcome.error
            result.status = "no_stories"
            return result
        if not outcome.stories:
            result.status = "no_stories"
            return result

        result.stories = outcome.stories
        result.status = "processed"
        await self._notify(result, webhook_url)
        self.ledger.mark_processed(document.id)
        logger.info("Processed: %s (%d stories)", document.title, len(outcome.stories))
        return result

    async def run_pass(self, page_size: int = 20, webhook_url: Optional[str] = None) -> PassSummary:
        """Process every eligible transcript among the newest ``page_size``.

        Raises:
            ConfigurationError: if the model backend is not configured
            TransientExternalError: if the transcript listing itself fails
        """
        self.preflight()
        webhook = self._webhook(webhook_url)
        summary = PassSummary(notifications_enabled=bool(webhook))

        documents = await self.source.query_recent(page_size)
        summary.analyzed = len(documents)

        for document in documents:
            async with self._ledger_lock:
                if not self.ledger.is_eligible(document.id, document.created_at):
                    summary.skipped += 1
                    continue
                summary.add(await self._process_document(document, webhook))

        if summary.processed:
            logger.info("Pass complete: %d new transcripts processed, %d stories",
                        summary.processed, summary.stories)
            if webhook:
                logger.info("Slack notifications: %d sent, %d failed",
                            summary.notified, summary.failed_notifications)
        else:
            logger.info("No new transcripts found")
        return summary

    async def process_document(self, page_id: str, webhook_url: Optional[str] = None) -> Dict[str, Any]:
        """Process one transcript by page ID (webhook entry point)"""
        self.preflight()
        webhook = self._webhook(webhook_url)
        document = await self.source.retrieve(page_id)

        async with self._ledger_lock:
            if not self.ledger.is_eligible(document.id, document.created_at):
                logger.info("Transcript %s not new (already processed or before cutoff), skipping", page_id)
                return {
                    "alreadyProcessed": True,
                    "message": "Transcript not new - already processed or created before cutoff date",
                }
            result = await self._process_document(document, webhook)

        return {"alreadyProcessed": False, **result.to_dict()}

    async def process_transcript(
        self,
        transcript: str,
        title: str,
        webhook_url: Optional[str] = None,
        transcript_id: Optional[str] = None,
        share_url: str = "",
    ) -> DocumentResult:
        """Process caller-supplied transcript text (on-demand entry point).

        Raises:
            ValidationError: if the transcript is missing or too short
        """
        if not transcript or len(transcript) < MIN_TRANSCRIPT_CHARS:
            raise ValidationError("Transcript too short or missing")

        webhook = self._webhook(webhook_url)
        share_url = share_url or next(iter(find_share_links(transcript)), "")
        result = DocumentResult(
            document_id=transcript_id or "",
            title=title,
            status="failed",
            word_count=len(transcript.split()),
        )

        async with self._ledger_lock:
            if transcript_id and transcript_id in self.ledger:
                logger.info("Transcript %s already processed, skipping", transcript_id)
                result.status = "already_processed"
                return result
            outcome = await self._extract(transcript, title, transcript_id, share_url)
            if outcome.error:
                result.error = outcome.error
                result.status = "no_stories"
                return result
            result.stories = outcome.stories
            result.status = "processed" if outcome.stories else "no_stories"
            await self._notify(result, webhook)
            if transcript_id and outcome.stories:
                self.ledger.mark_processed(transcript_id)

        return result

    async def list_transcripts(self, page_size: int = 20) -> List[Dict[str, Any]]:
        """Recent transcripts that have enough content, with their ledger status"""
        documents = await self.source.query_recent(page_size)
        transcripts = []
        for document in documents:
            entry = {
                "id": document.id,
                "title": document.title,
                "createdTime": document.created_at.isoformat() if document.created_at else "",
                "date": document.created_at.date().isoformat() if document.created_at else "",
                "processed": document.id in self.ledger,
            }
            try:
                await self.source.load(document)
            except StoryforgeError as e:
                logger.error("Error fetching content for %s: %s", document.title, e)
                continue
            extracted = extract_text(document.id, document.raw_blocks)
            if not extracted.is_sufficient:
                continue
            entry.update(
                content=extracted.text,
                wordCount=extracted.word_count,
                shareUrl=document.share_url or extracted.share_url,
            )
            transcripts.append(entry)

        logger.info("Returning %d transcripts with content", len(transcripts))
        return transcripts
