from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Upstream research service
    upstream_api_url: str = "http://localhost:2024"
    upstream_api_key: str = ""
    upstream_assistant_id: str = "4e4535bf-3da8-5acb-abeb-03fa5852e7e6"  # interview_panel

    # Run configuration forwarded to the upstream assistant
    analyst_model: str = "openai:gpt-4o"
    max_analysts: int = 3
    max_concurrent_interviews: int = 5
    max_num_turns: int = 3
    recursion_limit: int = 100

    # Stream lifecycle
    stream_timeout_seconds: float = 300.0
    stall_threshold_seconds: float = 30.0
    text_stream_id: str = "research-text"

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_file: str = ""  # e.g. logs/panel_relay.log

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def upstream_base_url(self) -> str:
        return self.upstream_api_url.rstrip("/")


settings = Settings()
