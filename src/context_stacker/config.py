from __future__ import annotations

STORAGE_KEY = "aiContextStacker.tracks.v1"
STATE_DIR_NAME = ".context-stacker"
STATE_FILE_NAME = "state.json"
SETTINGS_FILE_NAME = ".context-stacker.yaml"
ENV_PREFIX = "CONTEXT_STACKER_"

DEFAULT_TRACK_ID = "default"
DEFAULT_TRACK_NAME = "Main"

# Always excluded from discovery, whatever the ignore file says.
FALLBACK_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "**/.git",
    "**/.svn",
    "**/.hg",
    "**/CVS",
    "**/.DS_Store",
    "**/Thumbs.db",
    "**/node_modules",
    "**/bower_components",
    "**/.venv",
    "**/venv",
    "**/__pycache__",
    "**/.mypy_cache",
    "**/.ruff_cache",
    "**/.pytest_cache",
    "**/.context-stacker",
    "**/package-lock.json",
    "**/yarn.lock",
    "**/pnpm-lock.yaml",
    "**/poetry.lock",
    "**/uv.lock",
    "**/Cargo.lock",
)

# Files that usually mark a meaningful directory for the folder picker.
FOLDER_MARKERS: tuple[str, ...] = (
    "package.json",
    "tsconfig.json",
    "jsconfig.json",
    "README.md",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "requirements.txt",
    "pyproject.toml",
)

# Discovery throughput limits.
STAT_BATCH_SIZE = 50
MIN_SCAN_CONCURRENCY = 2
MAX_DISCOVERY_RESULTS = 5000

# Content analysis heuristics. Empirical, tune here rather than at call sites.
BINARY_SNIFF_BYTES = 512
CHARS_PER_TOKEN = 4
WORDS_TO_TOKENS_RATIO = 1.3
LARGE_TEXT_THRESHOLD = 100 * 1024
MAX_ANALYSIS_BYTES = 1024 * 1024

DEFAULT_LARGE_FILE_TOKENS = 5000
DEFAULT_MAX_STATE_BYTES = 1_000_000

FILE_EVENT_FLUSH_DELAY = 0.1
PREVIEW_REFRESH_DELAY = 0.4
