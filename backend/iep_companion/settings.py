from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	# Cost-effective default for analysis and Q&A
	openai_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
	openai_base_url: str = Field(default="https://api.openai.com/v1/chat/completions", validation_alias="OPENAI_BASE_URL")
	openai_timeout_seconds: float = Field(default=30.0, validation_alias="OPENAI_TIMEOUT_SECONDS")
	# Lower temperature keeps the JSON analysis format consistent
	openai_temperature: float = Field(default=0.1, validation_alias="OPENAI_TEMPERATURE")
	analysis_max_tokens: int = Field(default=2000, validation_alias="ANALYSIS_MAX_TOKENS")
	chat_max_tokens: int = Field(default=1000, validation_alias="CHAT_MAX_TOKENS")
	chat_history_window: int = Field(default=10, validation_alias="CHAT_HISTORY_WINDOW")
	# When enabled, a failed analysis request yields the generic fallback analysis instead of failing the upload
	analysis_fallback_on_error: bool = Field(default=False, validation_alias="ANALYSIS_FALLBACK_ON_ERROR")

	# Document processing limits
	max_file_size_bytes: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_FILE_SIZE_BYTES")
	max_word_count: int = Field(default=50000, validation_alias="MAX_WORD_COUNT")

	# Speech
	voice_max_recording_seconds: float = Field(default=60.0, validation_alias="VOICE_MAX_RECORDING_SECONDS")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Auth sessions idle longer than this are purged by the cleanup loop
	session_retention_days: int = Field(default=7, validation_alias="SESSION_RETENTION_DAYS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
