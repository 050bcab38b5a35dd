from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator


class ExchangeSettings(BaseModel):
    rest_url: str = "https://api.huobi.pro"
    ws_url: str = "wss://api.huobi.pro/ws"
    quote_assets: list[str] = Field(default_factory=lambda: ["USDT", "BTC", "ETH"])

    model_config = {"extra": "forbid"}

    @field_validator("quote_assets", mode="before")
    @classmethod
    def _split_quote_assets(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            assets = [str(v).strip().upper() for v in value if str(v).strip()]
            if not assets:
                raise ValueError("quote_assets must name at least one quote asset")
            return assets
        return value


class CatalogueSettings(BaseModel):
    poll_interval_minutes: float = Field(default=10, gt=0)
    request_timeout_seconds: float = Field(default=10, gt=0)
    retry_attempts: int = Field(default=5, ge=1)
    retry_base_seconds: float = Field(default=1.0, ge=0)
    retry_max_seconds: float = Field(default=60.0, ge=0)

    model_config = {"extra": "forbid"}


class WebSocketSettings(BaseModel):
    ping_timeout_seconds: float = Field(default=30, gt=0)
    max_retries: int = Field(default=10, ge=0)
    reconnect_delay_seconds: float = Field(default=5.0, ge=0)
    command_max_retries: int = Field(default=5, ge=0)
    force_reconnect_hours: float = Field(default=6, ge=0)

    model_config = {"extra": "forbid"}


class StrikeSettings(BaseModel):
    unit_percent: float = Field(default=0.05, gt=0)
    decay_minutes: float = Field(default=60, gt=0)

    model_config = {"extra": "forbid"}


class ApeInSettings(BaseModel):
    start_percentage: float = -10.0
    increment_percentage: float = Field(default=-5.0, lt=0)
    reset_hours: float = Field(default=24, gt=0)

    model_config = {"extra": "forbid"}


class TelegramSettings(BaseModel):
    enabled: bool = False
    api_url: str = "https://api.telegram.org"
    chat_id: str | None = None
    strike_bot_token: SecretStr | None = None
    ape_in_bot_token: SecretStr | None = None
    user_name: str = "strikewatch"

    model_config = {"extra": "forbid"}

    # chat ids are numeric, YAML and env parsing hand them over as ints
    @field_validator("chat_id", mode="before")
    @classmethod
    def _chat_id_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class Settings(BaseModel):
    env: str = "dev"
    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)
    catalogue: CatalogueSettings = Field(default_factory=CatalogueSettings)
    websocket: WebSocketSettings = Field(default_factory=WebSocketSettings)
    strike: StrikeSettings = Field(default_factory=StrikeSettings)
    ape_in: ApeInSettings = Field(default_factory=ApeInSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)

    model_config = {"extra": "forbid"}

    def redacted(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        telegram = data.get("telegram")
        if isinstance(telegram, dict):
            for key in ("strike_bot_token", "ape_in_bot_token"):
                if telegram.get(key) is not None:
                    telegram[key] = "***"
        return data
