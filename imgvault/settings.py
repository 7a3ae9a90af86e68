from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    aws_region: str = Field("us-east-1", env="AWS_REGION")
    s3_bucket: str = Field("imgvault-bucket", env="S3_BUCKET")
    aws_endpoint_url: Optional[str] = Field(None, env="AWS_ENDPOINT_URL")
    s3_enable_versioning: bool = Field(True, env="S3_ENABLE_VERSIONING")

    aws_access_key_id: str = Field("test", env="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field("test", env="AWS_SECRET_ACCESS_KEY")

    database_url: str = Field("sqlite:///./imgvault.db", env="DATABASE_URL")
    database_echo: bool = Field(False, env="DATABASE_ECHO")

    default_page_limit: int = Field(10, env="DEFAULT_PAGE_LIMIT")
    max_page_limit: int = Field(100, env="MAX_PAGE_LIMIT")

    app_title: str = Field("Image Vault", env="APP_TITLE")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        extra = "allow"  # tolerate unknown vars if needed

settings = Settings()
