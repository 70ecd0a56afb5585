"""
Storyforge Common Module

Shared infrastructure for the transcript pipeline.
"""

from .config import StoryforgeConfig, load_config
from .errors import (
    StoryforgeError,
    ConfigurationError,
    ValidationError,
    TransientExternalError,
    MalformedModelOutput,
    DeploymentError,
)
from .llm_client import LLMClient
from .rate_limiter import RateLimiter

__all__ = [
    "StoryforgeConfig",
    "load_config",
    "StoryforgeError",
    "ConfigurationError",
    "ValidationError",
    "TransientExternalError",
    "MalformedModelOutput",
    "DeploymentError",
    "LLMClient",
    "RateLimiter",
]
