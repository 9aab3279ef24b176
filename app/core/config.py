from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
    return bool(v)


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'fromagerie_user'
    POSTGRES_PASSWORD: str = 'fromagerie_pass'
    POSTGRES_DB: str = 'fromagerie_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Overrides the POSTGRES_* settings (e.g. sqlite:///./dev.db)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_CREATE_TABLES: bool = True

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7

    # Passwords
    BCRYPT_ROUNDS: int = 12
    MIN_PASSWORD_LENGTH: int = 6

    # Demo account created on startup
    DEMO_USER_ENABLED: bool = False
    DEMO_USERNAME: str = 'demo'
    DEMO_EMAIL: str = 'demo@fromagerie-alioui.com'
    DEMO_PASSWORD: str = 'demo123'

    # Invoice numbering
    INVOICE_NUMBER_PREFIX: str = 'BCC'
    INVOICE_NUMBER_MIN_DIGITS: int = 3
    INVOICE_NUMBER_MAX_RETRIES: int = 5
    DEFAULT_DELIVERY_PERSON: str = 'AbdelMonaam Alioui'

    # Issuer identity printed on invoices
    ISSUER_NAME: str = 'Fromagerie Alioui'
    ISSUER_ADDRESS: str = 'Zhena, Utique Bizerte'
    ISSUER_PHONE: str = '98136638'
    ISSUER_MF: str = '1798066/G'
    ISSUER_LOGO_URL: Optional[str] = 'https://i.ibb.co/ZzzzhdRN/LOGO1.png'
    ISSUER_TIMEZONE: str = 'Africa/Tunis'
    CURRENCY_SUFFIX: str = 'TND'

    # PDF rendering
    PDF_MAX_CONCURRENT_RENDERS: int = 4
    PDF_ACQUIRE_TIMEOUT_SECONDS: float = 30.0
    PDF_LOGO_TIMEOUT_SECONDS: float = 5.0
    PDF_LOGO_WIDTH: int = 100
    # Unicode TTF fonts; the bundled DejaVu Sans is used when unset
    PDF_FONT_PATH: Optional[str] = None
    PDF_FONT_BOLD_PATH: Optional[str] = None

    # HTTP
    CORS_ORIGINS: list = ["*"]

    # Pagination
    DEFAULT_PAGE_SIZE: int = 100
    MAX_PAGE_SIZE: int = 1000

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "DB_CREATE_TABLES", "DEMO_USER_ENABLED", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

settings = Settings()
