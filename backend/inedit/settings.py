from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")
	gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")
	generation_max_output_tokens: int = Field(default=8192, validation_alias="GENERATION_MAX_OUTPUT_TOKENS")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	# "lifetime" counts credits_used against the role limit (or credits_granted);
	# "daily" counts generations per local calendar day.
	credit_policy: Literal["lifetime", "daily"] = Field(default="lifetime", validation_alias="CREDIT_POLICY")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")
	seed_bancas: bool = Field(default=True, validation_alias="SEED_BANCAS")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	cors_origins: list[str] = Field(default=["http://localhost:3000"], validation_alias="CORS_ORIGINS")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
