# lostfound/config.py
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import Optional

class Settings(BaseSettings):
    # Database Configuration
    database_host: str = Field("db", env="DATABASE_HOST")
    database_port: int = Field(5432, env="DATABASE_PORT")
    database_user: str = Field("lostfound", env="DATABASE_USER")
    database_password: str = Field("my_database_password", env="DATABASE_PASSWORD")
    database_name: str = Field("lostfound", env="DATABASE_NAME")
    database_url: Optional[str] = Field(None, env="DATABASE_URL")  # 指定時は上記の個別設定より優先
    database_echo: bool = Field(False, env="DATABASE_ECHO")

    # API Configuration
    api_host: str = Field("0.0.0.0", env="API_HOST")
    api_port: int = Field(8000, env="API_PORT")

    # JWT Configuration
    secret_key: str = Field(..., env="SECRET_KEY")
    algorithm: str = Field("HS256", env="ALGORITHM")
    access_token_expire_days: int = Field(7, env="ACCESS_TOKEN_EXPIRE_DAYS")

    # Password Configuration
    password_secret: str = Field(..., env="PASSWORD_SECRET")
    min_password_length: int = Field(6, env="MIN_PASSWORD_LENGTH")

    # Bootstrap Super Admin
    super_admin_email: Optional[str] = Field(None, env="SUPER_ADMIN_EMAIL")
    super_admin_password: Optional[str] = Field(None, env="SUPER_ADMIN_PASSWORD")
    super_admin_username: str = Field("admin", env="SUPER_ADMIN_USERNAME")

    # Blob Storage
    blob_storage_path: Optional[str] = Field(None, env="BLOB_STORAGE_PATH")
    blob_base_url: str = Field("/uploads", env="BLOB_BASE_URL")

    # Logging
    log_level: str = Field("INFO", env="LOG_LEVEL")

    @field_validator("access_token_expire_days")
    def expire_days_in_range(cls, v):
        if not 7 <= v <= 30:
            raise ValueError("ACCESS_TOKEN_EXPIRE_DAYS must be between 7 and 30")
        return v

    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.database_user}:"
            f"{self.database_password}@{self.database_host}:"
            f"{self.database_port}/{self.database_name}"
        )

    def is_super_admin_email(self, email: Optional[str]) -> bool:
        if not self.super_admin_email or not email:
            return False
        return email.strip().lower() == self.super_admin_email.strip().lower()

    class Config:
        env_file = ".env"

settings = Settings()
