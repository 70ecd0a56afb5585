"""
Storyforge Pipeline - Transcript to Story Delivery

Watches a Notion database of meeting transcripts, extracts development
stories with an LLM, and delivers them to Slack and (on request) Jira.

Key Components:
- NotionDocumentSource: Reads transcript pages and their blocks
- extract_text: Flattens blocks to text and applies the word-count gate
- ProcessingLedger: Persisted dedup record with a fixed cutoff date
- StoryExtractor: LLM extraction with defensive JSON parsing
- SlackNotifier: Paced, sequential Slack delivery with per-story status
- JiraDeployer: Credential probe -> project probe -> issue creation
- TranscriptPipeline: Ties the above into passes and on-demand calls
- Scheduler: Periodic passes with an explicit, inspectable state

Rules:
1. A transcript is processed at most once
2. Transcripts created before the cutoff date are never processed
3. Transcripts with 50 words or fewer never reach the LLM
4. One failed transcript or notification never aborts a pass
5. Stories are sent to Slack one at a time, paced
6. Jira deployment is explicit, per story, and never retried
"""

from .content_extractor import ExtractedText, extract_text
from .documents import Document, NotionDocumentSource
from .jira_deployer import DeploymentResult, JiraConfig, JiraDeployer
from .ledger import ProcessingLedger
from .notifier import SlackNotifier
from .processor import DocumentResult, PassSummary, TranscriptPipeline
from .scheduler import Scheduler, SchedulerState
from .story_extractor import ExtractionOutcome, StoryExtractor

__all__ = [
    "ExtractedText",
    "extract_text",
    "Document",
    "NotionDocumentSource",
    "DeploymentResult",
    "JiraConfig",
    "JiraDeployer",
    "ProcessingLedger",
    "SlackNotifier",
    "DocumentResult",
    "PassSummary",
    "TranscriptPipeline",
    "Scheduler",
    "SchedulerState",
    "ExtractionOutcome",
    "StoryExtractor",
]
