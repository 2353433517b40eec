"""Data models for the LLM profile vault.

Updates: v0.2.0 - 2025-12-17 - Export test prompt result and transcript models.
Updates: v0.1.0 - 2025-12-14 - Export LLMProfile, ProfileVault, and payload schemas.
"""

from .llm_profile import (
    API_KEY_PLACEHOLDER,
    ActivateProfilePayload,
    CreateProfilePayload,
    DeleteProfilePayload,
    LLMProfile,
    ProfileVault,
    ProviderType,
    UpdateProfilePayload,
)
from .test_prompt import TestPromptRequest, TestPromptResult, TestTranscript, TranscriptMessage

__all__ = [
    "API_KEY_PLACEHOLDER",
    "ActivateProfilePayload",
    "CreateProfilePayload",
    "DeleteProfilePayload",
    "LLMProfile",
    "ProfileVault",
    "ProviderType",
    "TestPromptRequest",
    "TestPromptResult",
    "TestTranscript",
    "TranscriptMessage",
    "UpdateProfilePayload",
]
