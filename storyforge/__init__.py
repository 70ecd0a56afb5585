"""
Storyforge

Turns meeting transcripts into development stories and fans them out to
the team's chat channel and issue tracker.

Philosophy:
- A transcript is processed at most once (persisted ledger + cutoff date)
- Model output is never trusted blindly: parse defensively, clamp scores
- Partial failure is reported, never raised: one bad transcript or one
  failed notification does not abort a pass

Usage:
    from storyforge.common import load_config, LLMClient
    from storyforge.common.schemas import WorkItem
    from storyforge.pipeline import TranscriptPipeline, ProcessingLedger, Scheduler
"""

__version__ = "0.1.0"
