from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: Optional[str] = None
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_database: str = "receipts"
    mysql_user: str = "receipts"
    mysql_password: str = ""

    # MinIO
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = ""
    minio_secret_key: str = ""
    minio_bucket: str = "receipts"
    minio_secure: bool = False
    minio_public_url: Optional[str] = None

    # SiliconFlow (OpenAI compatible) vision model
    siliconflow_api_key: str = ""
    siliconflow_base_url: str = "https://api.siliconflow.cn/v1"
    siliconflow_model_vision: str = "Qwen/Qwen2.5-VL-72B-Instruct"
    ai_temperature: float = 0.1

    # WhatsApp Cloud API
    whatsapp_phone_id: str = ""
    whatsapp_api_token: str = ""
    whatsapp_verify_token: str = ""
    whatsapp_graph_url: str = "https://graph.facebook.com"
    whatsapp_api_version: str = "v21.0"
    http_timeout: float = 30.0

    # Application
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = False

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.mysql_user}:{self.mysql_password}"
            f"@{self.mysql_host}:{self.mysql_port}/{self.mysql_database}"
        )

    class Config:
        env_file = ".env"


settings = Settings()
