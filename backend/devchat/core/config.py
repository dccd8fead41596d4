from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "DevChat"
    debug: bool = False

    # Paths
    db_path: Path = Path(__file__).resolve().parent.parent.parent / "devchat.db"

    # Store
    store_backend: str = "sql"  # sql | memory

    # Generator
    llm_provider: str = "ollama"  # ollama | gemini
    model_url: str = "http://ollama:11434"
    model_name: str = "devstral"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    model_temperature: float = Field(default=0.7, ge=0, le=2)
    model_top_p: float = Field(default=0.9, ge=0, le=1)
    model_top_k: int = Field(default=40, ge=0)
    model_num_ctx: int = Field(default=8192, gt=0)
    model_num_predict: int = -1  # -1 = unbounded
    model_repeat_penalty: float = 1.1
    model_repeat_last_n: int = 64
    model_timeout: float | None = None  # no cap on generation length unless deployment sets one
    model_connect_timeout: float = 10.0

    # Context
    context_limit: int = Field(default=10, gt=0)
    continuation_tail_chars: int = 500

    # Relay
    relay_mode: str = "buffered"  # buffered | incremental
    relay_pace_every: int = 10
    relay_pace_delay: float = 0.001

    # Completion classifier
    truncation_tail_window: int = 100
    abrupt_ending_window: int = 50
    abrupt_min_length: int = 100

    # Reconciliation
    reconcile_interval_seconds: int = 0  # 0 disables the background pass

    # Attachments
    max_files: int = 10
    max_file_size: int = 50 * 1024 * 1024
    max_total_size: int = 100 * 1024 * 1024

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "DEVCHAT_",
        "protected_namespaces": (),
    }


settings = Settings()
