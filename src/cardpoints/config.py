from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    rules_file: str = "data/rules/reward_rules.json"
    instruments_file: str = "data/instruments.json"
    rates_file: str = "data/rates/conversion_rates.json"
    period_spend_file: str = "data/spend/period_spend.json"
    target_currency: str = "KrisFlyer Miles"

    rule_cache_ttl_seconds: float = 30.0
    rate_cache_ttl_seconds: float = 900.0
    lookup_timeout_seconds: float = 5.0
    simulation_timeout_seconds: float = 10.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CARDPOINTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
