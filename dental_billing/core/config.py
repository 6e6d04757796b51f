from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Dental Billing Core"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Database
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    POSTGRES_PORT: str = "5432"
    DATABASE_URL: Optional[str] = None
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    @model_validator(mode='after')
    def assemble_db_connection(self) -> 'Settings':
        if not self.DATABASE_URL:
            if all([self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_SERVER, self.POSTGRES_DB]):
                self.DATABASE_URL = (
                    f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@"
                    f"{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
                )
            else:
                self.DATABASE_URL = "sqlite:///./dental_billing.db"

        if self.DATABASE_URL.startswith("postgresql://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgresql://", "postgresql+psycopg2://", 1)

        return self

    # Billing
    RECEIPT_PREFIX: str = "RCP"
    DEFAULT_TAX_RATE: Decimal = Decimal("0.08")
    DISCOUNT_CODES: Dict[str, Dict[str, Any]] = {
        "UTMBEST": {
            "percentage": "0.20",
            "description": "UTM Best Student Discount",
            "is_active": True,
        }
    }

    @field_validator("DEFAULT_TAX_RATE")
    @classmethod
    def check_tax_rate(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("DEFAULT_TAX_RATE must not be negative")
        return v

    # QR payloads printed on receipts
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    QR_SERVICE_URL: str = "https://api.qrserver.com/v1/create-qr-code/"
    QR_SIZE: int = 200
    QR_FETCH_IMAGE: bool = False
    QR_TIMEOUT_SECONDS: float = 5.0

    # Patient and staff directory: the front-office API when a URL is set,
    # otherwise an in-memory directory seeded from the two lists below
    DIRECTORY_SERVICE_URL: Optional[str] = None
    DIRECTORY_SERVICE_TOKEN: Optional[str] = None
    DIRECTORY_TIMEOUT_SECONDS: float = 5.0
    DIRECTORY_PATIENTS: List[Dict[str, Any]] = []
    DIRECTORY_STAFF: List[Dict[str, Any]] = []

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra='ignore')


settings = Settings()
