"""
Content workflow & consistency engine for the lesson authoring backend.

This package holds the logic that keeps authored content consistent while
admins, language-scoped tutors and the AI generator work on it:
lesson ordering, the draft/finished/published lifecycle, cascading
soft-deletes, proverb merging and AI output sanitization.

**Version**: 0.1.0
**Python**: >=3.11
**Key Dependencies**: pydantic, instructor, openai, anthropic, langfuse, python-dotenv
"""

__version__ = "0.1.0"
__author__ = "Contentflow"

SUPPORTED_LANGUAGES = ["yoruba", "igbo", "hausa"]
SUPPORTED_LEVELS = ["beginner", "intermediate", "advanced"]

__all__ = [
    "__version__",
    "__author__",
    "SUPPORTED_LANGUAGES",
    "SUPPORTED_LEVELS",
]
