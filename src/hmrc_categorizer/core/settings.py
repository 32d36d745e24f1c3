import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from hmrc_categorizer.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None
_CONFIG_FILE_VALUES: dict[str, str] = {}
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "BATCH_SIZE",
    "ROW_DELAY_MS",
    "BATCH_DELAY_MS",
    "AI_TIMEOUT_MS",
    "AI_MAX_ATTEMPTS",
    "AI_BACKOFF_SECONDS",
    "MANUAL_REVIEW_THRESHOLD",
)

DEFAULT_BATCH_SIZE = 10
DEFAULT_ROW_DELAY_MS = 200
DEFAULT_BATCH_DELAY_MS = 100
DEFAULT_AI_TIMEOUT_MS = 15000
DEFAULT_AI_MAX_ATTEMPTS = 3
DEFAULT_AI_BACKOFF_SECONDS = 1.0
DEFAULT_MANUAL_REVIEW_THRESHOLD = 0.5
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    cwd = os.getcwd()
    candidate = os.path.join(cwd, "config", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return candidate
    return os.path.join(cwd, CONFIG_FILENAME)


def _strip_inline_comment(raw_value: str) -> str:
    in_single = False
    in_double = False
    escaped = False
    for index, char in enumerate(raw_value):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"' and not in_single:
            in_double = not in_double
            continue
        if char == "'" and not in_double:
            in_single = not in_single
            continue
        if char == "#" and not in_single and not in_double:
            return raw_value[:index].rstrip()
    return raw_value


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) < 2:
        return raw_value
    if raw_value[0] == raw_value[-1] == '"':
        return raw_value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    if raw_value[0] == raw_value[-1] == "'":
        return raw_value[1:-1].replace("\\'", "'").replace("\\\\", "\\")
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    """Read a flat ``KEY: value`` file; nested YAML is not supported."""
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            if not key:
                continue
            cleaned = _strip_inline_comment(raw_value).strip()
            if not cleaned:
                continue
            value = _unquote_value(cleaned)
            if value:
                values[key] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH
    global _CONFIG_FILE_VALUES
    global _EXTERNAL_ENV_KEYS

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _EXTERNAL_ENV_KEYS = set(os.environ.keys())

    _CONFIG_FILE_PATH = _resolve_config_path()
    _CONFIG_FILE_VALUES = read_config_file(_CONFIG_FILE_PATH)

    # Real environment variables win over the config file
    for key in _CONFIG_KEYS:
        if key not in os.environ and key in _CONFIG_FILE_VALUES:
            os.environ[key] = _CONFIG_FILE_VALUES[key]


def get_config_path() -> str | None:
    return _CONFIG_FILE_PATH


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(name: str, default: float, min_value: float | None = None) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


_SENSITIVE_ENV_KEYS = (
    "KEY",
    "TOKEN",
    "SECRET",
    "PASSWORD",
    "PASS",
    "AUTH",
    "BEARER",
    "PRIVATE",
)


def _should_mask_env_value(name: str, value: str) -> bool:
    upper_name = name.upper()
    if any(marker in upper_name for marker in _SENSITIVE_ENV_KEYS):
        return True
    if value.startswith("sk-") or value.startswith("rk-"):
        return True
    if value.startswith("Bearer ") or value.startswith("bearer "):
        return True
    return False


def mask_env_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not _should_mask_env_value(name, sanitized):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Config file: %s", get_config_path() or "<none>")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        if raw_value is None:
            logger.info("[ENV] %s=<unset>", key)
            continue
        origin = "env" if is_env_override(key) else "config"
        logger.info("[ENV] %s=%s (%s)", key, mask_env_value(key, raw_value), origin)


@dataclass(frozen=True)
class BatchSettings:
    batch_size: int = DEFAULT_BATCH_SIZE
    row_delay_ms: int = DEFAULT_ROW_DELAY_MS
    batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS
    ai_timeout_ms: int = DEFAULT_AI_TIMEOUT_MS
    ai_max_attempts: int = DEFAULT_AI_MAX_ATTEMPTS
    ai_backoff_seconds: float = DEFAULT_AI_BACKOFF_SECONDS
    manual_review_threshold: float = DEFAULT_MANUAL_REVIEW_THRESHOLD


def load_batch_settings() -> BatchSettings:
    return BatchSettings(
        batch_size=get_env_int("BATCH_SIZE", DEFAULT_BATCH_SIZE, min_value=1),
        row_delay_ms=get_env_int("ROW_DELAY_MS", DEFAULT_ROW_DELAY_MS, min_value=0),
        batch_delay_ms=get_env_int("BATCH_DELAY_MS", DEFAULT_BATCH_DELAY_MS, min_value=0),
        ai_timeout_ms=get_env_int("AI_TIMEOUT_MS", DEFAULT_AI_TIMEOUT_MS, min_value=1),
        ai_max_attempts=get_env_int("AI_MAX_ATTEMPTS", DEFAULT_AI_MAX_ATTEMPTS, min_value=1),
        ai_backoff_seconds=get_env_float(
            "AI_BACKOFF_SECONDS", DEFAULT_AI_BACKOFF_SECONDS, min_value=0.0
        ),
        manual_review_threshold=get_env_float(
            "MANUAL_REVIEW_THRESHOLD", DEFAULT_MANUAL_REVIEW_THRESHOLD, min_value=0.0
        ),
    )


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR")
CONFIG_DIR = os.getenv("CONFIG_DIR")

for _path in (DATA_DIR, LOG_DIR, CONFIG_DIR):
    ensure_dir(_path)
