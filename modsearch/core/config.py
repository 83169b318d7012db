"""Configuration from environment variables (.env)."""

import os
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass
class Config:
    project_root: Path
    logs_dir: Path
    log_level: str
    upstream_search_url: str
    gateway_url: str
    server_host: str
    server_port: int
    user_agent: str
    page_cap: int  # Only the first upstream page is streamed
    batch_size: int
    batch_pacing_seconds: float
    default_max_retries: int
    default_timeout_seconds: float
    default_retry_delay_seconds: float
    search_max_retries: int
    search_timeout_seconds: float
    search_retry_delay_seconds: float
    slow_search_notice_seconds: float

    @classmethod
    def load(cls) -> "Config":
        project_root = Path(__file__).parent.parent.parent
        return cls(
            project_root=project_root,
            logs_dir=Path(os.getenv("LOGS_DIR", str(project_root / "logs"))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            upstream_search_url=os.getenv("UPSTREAM_SEARCH_URL", "https://api.dicecho.com/api/mod"),
            gateway_url=os.getenv("GATEWAY_URL", "http://localhost:8000/api/search"),
            server_host=os.getenv("SERVER_HOST", "127.0.0.1"),
            server_port=int(os.getenv("SERVER_PORT", "8000")),
            user_agent=os.getenv(
                "UPSTREAM_USER_AGENT",
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
            ),
            page_cap=int(os.getenv("SEARCH_PAGE_CAP", "10")),
            batch_size=int(os.getenv("SEARCH_BATCH_SIZE", "2")),
            batch_pacing_seconds=float(os.getenv("SEARCH_BATCH_PACING", "0.2")),
            default_max_retries=int(os.getenv("FETCH_MAX_RETRIES", "2")),
            default_timeout_seconds=float(os.getenv("FETCH_TIMEOUT", "8.0")),
            default_retry_delay_seconds=float(os.getenv("FETCH_RETRY_DELAY", "1.0")),
            search_max_retries=int(os.getenv("SEARCH_FETCH_MAX_RETRIES", "5")),
            search_timeout_seconds=float(os.getenv("SEARCH_FETCH_TIMEOUT", "5.0")),
            search_retry_delay_seconds=float(os.getenv("SEARCH_FETCH_RETRY_DELAY", "0.5")),
            slow_search_notice_seconds=float(os.getenv("SLOW_SEARCH_NOTICE", "3.0")),
        )

    def validate(self) -> list[str]:
        errors = []
        if not self.upstream_search_url.startswith(("http://", "https://")):
            errors.append(f"Upstream search URL must be http(s): {self.upstream_search_url}")
        if not self.gateway_url.startswith(("http://", "https://")):
            errors.append(f"Gateway URL must be http(s): {self.gateway_url}")
        if self.page_cap < 1:
            errors.append(f"Page cap must be positive: {self.page_cap}")
        if self.batch_size < 1:
            errors.append(f"Batch size must be positive: {self.batch_size}")
        if self.batch_pacing_seconds < 0:
            errors.append(f"Batch pacing must not be negative: {self.batch_pacing_seconds}")
        if self.default_max_retries < 0 or self.search_max_retries < 0:
            errors.append("Retry budgets must not be negative")
        return errors


config = Config.load()
