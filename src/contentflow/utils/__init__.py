"""
Shared utilities for the workflow engine.

- llm_client.py: Instructor-wrapped async OpenAI/Anthropic/Gemini client with retry logic
- ai_content_client.py: phrase/proverb/lesson generation contract on top of the LLM client
- file_io.py: JSON snapshot read/write
- logging_config.py: Structured JSON logging and stage timing
- text_normalization.py: dedup keys for phrases, proverbs and titles
- language_utils.py: language display names and codes
"""

__all__ = [
    "llm_client",
    "ai_content_client",
    "file_io",
    "logging_config",
    "text_normalization",
    "language_utils",
]
