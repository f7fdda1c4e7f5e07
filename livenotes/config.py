"""
Configuration management for the live lecture notes pipeline.
"""

import os
from typing import Dict, Any, Optional
from pathlib import Path
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class LLMConfig(BaseModel):
    """Configuration for the generative text service."""
    provider: str = "openai"
    model: str = Field(default="gpt-4o-mini")
    api_key: Optional[str] = None
    api_base: str = "https://api.openai.com/v1"
    max_tokens: int = 1024
    temperature: float = 0.7
    timeout: float = 30.0          # seconds to open a stream
    fragment_timeout: float = 30.0  # seconds to wait for the next fragment
    max_retries: int = 2
    retry_delay: float = 1.0

    @validator('api_key', always=True)
    def validate_api_key(cls, v):
        # Defer hard validation to the first call so the app can boot without a key
        if v:
            return v
        return os.getenv('OPENAI_API_KEY') or None

    @validator('model')
    def validate_model(cls, v):
        if not v:
            v = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
        return v


class PipelineConfig(BaseModel):
    """Configuration for the annotation and note pipelines."""
    annotation_block_size: int = 4
    note_batch_size: int = 8
    poll_interval: float = 2.0
    annotation_sentences: int = 4
    annotation_prompt_file: Optional[Path] = None
    note_prompt_file: Optional[Path] = None
    drain_timeout: float = 60.0
    summary_preview_chars: int = 100

    @validator('annotation_block_size', 'note_batch_size')
    def positive_size(cls, v):
        if v < 1:
            raise ValueError('Batch sizes must be at least 1')
        return v


class SourceConfig(BaseModel):
    """Configuration for the transcription line source."""
    base_url: str = "http://localhost:8000"
    timeout: float = 5.0


class StorageConfig(BaseModel):
    """Configuration for conversation and note persistence."""
    backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379"
    redis_db: int = 0
    key_prefix: str = "livenotes"
    timeout: float = 10.0
    max_retries: int = 2
    retry_delay: float = 0.5

    @validator('backend')
    def validate_backend(cls, v):
        v = (v or "memory").lower()
        if v not in ("memory", "redis"):
            raise ValueError(f"Unknown storage backend: {v}")
        return v


class WebConfig(BaseModel):
    """Configuration for the HTTP API."""
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    cors_origins: str = "*"
    request_timeout: float = 120.0


class AppConfig(BaseSettings):
    """Main application configuration."""
    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    user_id: Optional[str] = None
    log_level: str = "INFO"

    class Config:
        env_file = '.env'
        env_file_encoding = 'utf-8'
        env_prefix = 'LIVENOTES_'
        extra = 'ignore'

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        config = cls()

        if os.getenv('OPENAI_API_KEY'):
            config.llm.api_key = os.getenv('OPENAI_API_KEY')

        if os.getenv('OPENAI_MODEL'):
            config.llm.model = os.getenv('OPENAI_MODEL')

        if os.getenv('OPENAI_BASE_URL'):
            config.llm.api_base = os.getenv('OPENAI_BASE_URL')

        if os.getenv('LIVENOTES_SOURCE_URL'):
            config.source.base_url = os.getenv('LIVENOTES_SOURCE_URL')

        if os.getenv('LIVENOTES_STORAGE_BACKEND'):
            config.storage.backend = os.getenv('LIVENOTES_STORAGE_BACKEND').lower()

        if os.getenv('REDIS_URL'):
            config.storage.redis_url = os.getenv('REDIS_URL')

        for key_env, section, attr, cast in [
            ('LIVENOTES_ANNOTATION_BLOCK_SIZE', config.pipeline, 'annotation_block_size', int),
            ('LIVENOTES_NOTE_BATCH_SIZE', config.pipeline, 'note_batch_size', int),
            ('LIVENOTES_POLL_INTERVAL', config.pipeline, 'poll_interval', float),
            ('LIVENOTES_LLM_TIMEOUT', config.llm, 'timeout', float),
            ('LIVENOTES_LLM_FRAGMENT_TIMEOUT', config.llm, 'fragment_timeout', float),
            ('LIVENOTES_LLM_MAX_RETRIES', config.llm, 'max_retries', int),
            ('LIVENOTES_STORAGE_TIMEOUT', config.storage, 'timeout', float),
            ('LIVENOTES_PORT', config.web, 'port', int),
        ]:
            if os.getenv(key_env):
                try:
                    setattr(section, attr, cast(os.getenv(key_env)))
                except ValueError:
                    pass

        if os.getenv('LIVENOTES_ANNOTATION_PROMPT_FILE'):
            config.pipeline.annotation_prompt_file = Path(os.getenv('LIVENOTES_ANNOTATION_PROMPT_FILE'))
        if os.getenv('LIVENOTES_NOTE_PROMPT_FILE'):
            config.pipeline.note_prompt_file = Path(os.getenv('LIVENOTES_NOTE_PROMPT_FILE'))

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> 'AppConfig':
        """Create configuration from YAML file."""
        import yaml

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        llm = self.llm.dict()
        # Never echo the key back out
        llm['api_key'] = bool(llm.get('api_key'))
        pipeline = self.pipeline.dict()
        for key in ('annotation_prompt_file', 'note_prompt_file'):
            if pipeline.get(key) is not None:
                pipeline[key] = str(pipeline[key])
        return {
            'llm': llm,
            'pipeline': pipeline,
            'source': self.source.dict(),
            'storage': self.storage.dict(),
            'web': self.web.dict(),
            'user_id': self.user_id,
            'log_level': self.log_level,
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
