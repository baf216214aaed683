"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Kafka ─────────────────────────────────
    KAFKA_URL: str = "localhost:9092"
    KAFKA_GROUP_ID: str = "submission-processor"
    # Client certificate and key: a file path or the PEM text itself
    KAFKA_CLIENT_CERT: str = ""
    KAFKA_CLIENT_CERT_KEY: str = ""
    KAFKA_MAX_POLL_RECORDS: int = 100
    KAFKA_POLL_TIMEOUT_MS: int = 1000

    SUBMISSION_CREATE_TOPIC: str = "submission.notification.create"
    AVSCAN_TOPIC: str = "avscan.action.scan"

    @property
    def KAFKA_USE_SSL(self) -> bool:
        """TLS is on only when both halves of the client certificate are set."""
        return bool(self.KAFKA_CLIENT_CERT and self.KAFKA_CLIENT_CERT_KEY)

    # ── Submission / Antivirus APIs ───────────
    SUBMISSION_API_URL: str = "https://api.topcoder-dev.com/v5"
    ANTIVIRUS_API_URL: str = "http://localhost:3010/api/v1/avscan"
    MAX_FILE_SIZE: int = 50 * 1024 * 1024
    HTTP_TIMEOUT: float = 30.0

    # ── Auth0 (M2M) ───────────────────────────
    AUTH0_URL: str = "https://topcoder-dev.auth0.com/oauth/token"
    AUTH0_AUDIENCE: str = "https://m2m.topcoder-dev.com/"
    AUTH0_CLIENT_ID: str = ""
    AUTH0_CLIENT_SECRET: str = ""
    AUTH0_PROXY_SERVER_URL: str = ""
    TOKEN_CACHE_TIME: int = 86400

    # ── Object Storage ────────────────────────
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    STORAGE_ENDPOINT: str = ""
    STORAGE_PUBLIC_URL: str = "https://s3.amazonaws.com"
    STORAGE_URL_PATTERN: str = r"amazonaws"

    DMZ_BUCKET: str = "topcoder-dev-submissions-dmz"
    CLEAN_BUCKET: str = "topcoder-dev-submissions"
    QUARANTINE_BUCKET: str = "topcoder-dev-submissions-quarantine"

    # ── LangSmith Tracing ────────────────────
    LANGSMITH_API_KEY: str = ""
    LANGSMITH_ENDPOINT: str = "https://api.smith.langchain.com"
    LANGSMITH_PROJECT: str = "submission-processor"
    LANGSMITH_TRACING: bool = False

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
