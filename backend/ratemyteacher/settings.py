from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

class Settings(BaseSettings):
	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="RateMyTeacher", validation_alias="OPENROUTER_TITLE")

	# Bonus defaults, used only when no bonus configuration has been stored yet
	first_place_bonus: Decimal = Field(default=Decimal("10"), ge=0, validation_alias="FIRST_PLACE_BONUS")
	second_place_bonus: Decimal = Field(default=Decimal("5"), ge=0, validation_alias="SECOND_PLACE_BONUS")
	minimum_votes_threshold: int = Field(default=10, ge=1, validation_alias="MINIMUM_VOTES_THRESHOLD")
	bonus_currency: str = Field(default="USD", validation_alias="BONUS_CURRENCY")
	# "split" divides a position tier across tied teachers, "duplicate" pays each the full amount
	bonus_tie_strategy: str = Field(default="split", validation_alias="BONUS_TIE_STRATEGY")

	# Seed data
	seed_on_startup: bool = Field(default=True, validation_alias="SEED_ON_STARTUP")
	seed_password_plain: str = Field(default="ChangeMe123!", validation_alias="SEED_PASSWORD")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@field_validator("bonus_currency", "log_level")
	@classmethod
	def _upper(cls, value: str) -> str:
		return value.strip().upper()

	@field_validator("bonus_tie_strategy")
	@classmethod
	def _lower(cls, value: str) -> str:
		return value.strip().lower()

settings = Settings()
