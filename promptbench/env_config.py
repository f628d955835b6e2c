"""Environment configuration — .env loading plus PROMPTBENCH_* variables.

Reads the completion API key (OPENAI_API_KEY) and model, plus
promptbench-specific settings for storage, the HTTP server and the retry policy.

Usage:
    from promptbench.env_config import get_env_config, check_api_key

    cfg = get_env_config()
    print(cfg.model)     # "gpt-4"
    print(cfg.db_path)   # ".promptbench/prompt_tester.db"

    status = check_api_key(cfg)
    # {"status": "configured", "key_var": "OPENAI_API_KEY", ...}
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from promptbench.models import LLMProviderConfig

logger = logging.getLogger("promptbench.env_config")

API_KEY_VAR = "OPENAI_API_KEY"
_PLACEHOLDER_KEYS = ("your-actual-openai-api-key-here",)


@dataclass
class EnvConfig:
    """Resolved environment configuration."""
    # Completion API
    api_key: str | None = None
    model: str = "gpt-4"
    max_tokens: int = 1000
    temperature: float = 0.7
    max_attempts: int = 3
    retry_delay: float = 2.0
    timeout: int | None = None

    # Storage
    db_path: str = ".promptbench/prompt_tester.db"
    upload_dir: str = "uploads"
    max_upload_mb: int = 50

    # Server
    host: str = "0.0.0.0"
    port: int = 5001
    master_key: str | None = None
    log_level: str = "info"

    def provider_config(self) -> LLMProviderConfig:
        return LLMProviderConfig(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            max_attempts=self.max_attempts,
            retry_delay=self.retry_delay,
            timeout=self.timeout,
        )


def load_dotenv_if_available(path: str | Path | None = None) -> None:
    """Load .env file if it exists. Variables already set in the environment win."""
    candidates = [path] if path else [".env", Path.home() / ".promptbench" / ".env"]

    for candidate in candidates:
        if candidate and Path(candidate).is_file():
            logger.debug(f"Loading .env from {candidate}")
            with open(candidate) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, _, value = line.partition("=")
                    key = key.strip()
                    value = value.strip().strip("'\"")
                    if key and value and key not in os.environ:
                        os.environ[key] = value
            return


def get_env_config(dotenv_path: str | Path | None = None) -> EnvConfig:
    """Read all config from environment variables.

    Priority: CLI args > env vars > .env file > defaults
    """
    load_dotenv_if_available(dotenv_path)

    timeout_str = os.getenv("PROMPTBENCH_TIMEOUT", "")

    return EnvConfig(
        api_key=os.getenv(API_KEY_VAR, None) or None,
        model=os.getenv("PROMPTBENCH_MODEL", os.getenv("OPENAI_MODEL", "gpt-4")),
        max_tokens=int(os.getenv("PROMPTBENCH_MAX_TOKENS", "1000")),
        temperature=float(os.getenv("PROMPTBENCH_TEMPERATURE", "0.7")),
        max_attempts=int(os.getenv("PROMPTBENCH_MAX_ATTEMPTS", "3")),
        retry_delay=float(os.getenv("PROMPTBENCH_RETRY_DELAY", "2.0")),
        timeout=int(timeout_str) if timeout_str else None,
        db_path=os.getenv("PROMPTBENCH_DB_PATH", ".promptbench/prompt_tester.db"),
        upload_dir=os.getenv("PROMPTBENCH_UPLOAD_DIR", "uploads"),
        max_upload_mb=int(os.getenv("PROMPTBENCH_MAX_UPLOAD_MB", "50")),
        host=os.getenv("PROMPTBENCH_HOST", "0.0.0.0"),
        port=int(os.getenv("PROMPTBENCH_PORT", "5001")),
        master_key=os.getenv("PROMPTBENCH_MASTER_KEY", None) or None,
        log_level=os.getenv("PROMPTBENCH_LOG_LEVEL", "info"),
    )


def check_api_key(env: EnvConfig | None = None) -> dict[str, Any]:
    """Report whether a usable completion API key is configured.

    Placeholder values copied from an example .env count as missing.
    """
    cfg = env or get_env_config()
    key = cfg.api_key or ""

    if not key:
        return {"status": "no_key", "key_var": API_KEY_VAR, "detail": f"{API_KEY_VAR} not set"}
    if any(p in key for p in _PLACEHOLDER_KEYS):
        return {"status": "placeholder", "key_var": API_KEY_VAR, "detail": f"{API_KEY_VAR} still has the example value"}
    return {"status": "configured", "key_var": API_KEY_VAR, "detail": f"{API_KEY_VAR} set", "model": cfg.model}
