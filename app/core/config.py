from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Alpi Ticket Lifecycle API"
    DATABASE_URL: str = "sqlite:///./alpi.db"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Global SLA defaults, used when neither the project nor the global
    # settings row defines hours for a priority.
    SLA_DEFAULT_P0_HOURS: float = 4
    SLA_DEFAULT_P1_HOURS: float = 24
    SLA_DEFAULT_P2_HOURS: float = 168
    SLA_DEFAULT_P3_HOURS: float = 720

    # When true, unblocking pushes the SLA deadline out by the time spent blocked.
    SLA_EXTEND_ON_UNBLOCK: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def default_sla_hours(self) -> dict:
        return {
            "p0_critical": self.SLA_DEFAULT_P0_HOURS,
            "p1_high": self.SLA_DEFAULT_P1_HOURS,
            "p2_medium": self.SLA_DEFAULT_P2_HOURS,
            "p3_low": self.SLA_DEFAULT_P3_HOURS,
        }


settings = Settings()
