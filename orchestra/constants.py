"""
Application-wide constants for the Orchestra runtime.

This module defines constants used throughout the application to ensure
consistency and maintainability.
"""

# Configuration file names
CONFIG_FILE_NAME: str = "config.toml"

# Application directories
APP_NAME: str = "orchestra"
CONFIG_DIR_NAME: str = ".orchestra"

# Retry
DEFAULT_MAX_ATTEMPTS: int = 3
DEFAULT_RETRY_BASE_DELAY: float = 1.0

# Token estimation
DEFAULT_CHARS_PER_TOKEN: int = 4
MESSAGE_OVERHEAD_TOKENS: int = 10
ATTACHMENT_TOKENS: int = 1000
TOOL_USE_OVERHEAD_TOKENS: int = 20

# Context budget
DEFAULT_TOTAL_BUDGET: int = 16000
DEFAULT_RESPONSE_RESERVE: int = 4000
DEFAULT_TOOL_RESULT_MAX_TOKENS: int = 500
TRUNCATION_MARKER: str = "[...truncated...]"
CLEAN_BREAK_WINDOW: int = 200

# Tool execution
DEFAULT_MAX_ITERATIONS: int = 10
TOOL_RESULT_PREVIEW_CHARS: int = 500
USE_SKILL_TOOL_NAME: str = "use_skill"

# Provider defaults
DEFAULT_MAX_OUTPUT_TOKENS: int = 8192
TITLE_MAX_LENGTH: int = 100
TITLE_FALLBACK_LENGTH: int = 50
TITLE_INPUT_CHARS: int = 500
TITLE_PROMPT: str = (
    "Generate a short, descriptive title (3-6 words) for a conversation that "
    "started with this exchange. Return ONLY the title, no quotes or punctuation."
)

# Triggers
DEFAULT_CHECK_INTERVAL_SECONDS: float = 60.0
DEFAULT_TRIGGER_MAX_ITERATIONS: int = 5
DEFAULT_HISTORY_LIMIT: int = 50
DEFAULT_BASELINE_MAX_TOKENS: int = 2000
DEFAULT_TRIGGER_CONTEXT_MESSAGES: int = 8

# Fan-out
CHAIRMAN_KEY: str = "chairman"

# HTTP tools
DEFAULT_HTTP_TIMEOUT: float = 30.0
ALLOWED_SECRET_NAMES: tuple[str, ...] = (
    "SERPER_API_KEY",
    "OPENWEATHER_API_KEY",
    "SERPAPI_API_KEY",
)
