from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Generation backend
    generation_base_url: str = "http://localhost:3000"
    vocabulary_stream_path: str = "/api/generate-vocabulary-stream"
    paragraph_stream_path: str = "/api/generate-paragraph-stream"
    comprehensive_stream_path: str = "/api/generate-comprehensive-stream"
    supplementary_stream_path: str = "/api/generate-comprehensive-supplementary-stream"
    default_model: str = "gpt-4.1"
    available_models: str = "gpt-4.1,gpt-5"

    # Fan-out controls (0 disables the limit)
    max_parallel_jobs: int = 0
    job_timeout_seconds: float = 0.0
    http_connect_timeout: float = 10.0

    # Progress mapping while a job streams
    progress_base_percent: int = 15
    progress_chars_per_percent: int = 100
    progress_max_streaming_percent: int = 90

    # Comprehensive supplementary stage
    include_supplementary: bool = True
    supplementary_per_parent: int = 2

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def model_list(self) -> list[str]:
        return [m.strip() for m in self.available_models.split(",") if m.strip()]


settings = Settings()
