"""
Application configuration settings loaded from config.yaml
"""
import yaml
from pathlib import Path
from typing import List, Optional, Dict
from pydantic import BaseModel, field_validator


class DatabasePoolConfig(BaseModel):
    """Database connection pool configuration"""
    size: int = 10  # Number of connections to maintain
    max_overflow: int = 20  # Maximum overflow connections
    timeout: int = 30  # Seconds to wait for a connection
    recycle: int = 3600  # Seconds before recycling a connection
    echo: bool = False  # Log SQL queries


class DatabaseConfig(BaseModel):
    """Database configuration"""
    dsn: Optional[str] = None  # Full SQLAlchemy URL (e.g. sqlite:///./origination.db)
    server: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    db: Optional[str] = None
    port: str = "5432"
    db_schema: str = "public"  # PostgreSQL schema name
    create_tables: bool = True  # Run metadata.create_all on startup
    pool: DatabasePoolConfig = DatabasePoolConfig()

    @property
    def url(self) -> str:
        """Construct database URL"""
        if self.dsn:
            return self.dsn
        return f"postgresql://{self.user}:{self.password}@{self.server}:{self.port}/{self.db}"

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgresql")


class LLMConfig(BaseModel):
    """Reasoning service configuration (OpenAI-compatible chat completions with tools)"""
    base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    timeout: int = 60  # HTTP client timeout
    call_timeout: float = 30.0  # Hard cap on a single reasoning call
    max_tokens: int = 1024
    temperature: float = 0.3
    max_iterations: int = 8  # Tool-calling rounds per inbound message
    verify_ssl: bool = True
    prompts_file: Optional[str] = None  # Path to prompts.yaml (defaults to project root)
    prompt_versions: Optional[Dict[str, str]] = None  # Override default prompt versions per category


class ChatConfig(BaseModel):
    """Chat gateway (WhatsApp / Evolution-style API) configuration"""
    base_url: str = "http://localhost:8080"
    api_key: Optional[str] = None
    instance: str = "origination"
    timeout: int = 15
    max_chunk_length: int = 4000
    chunk_delay: float = 0.5  # Seconds between chunks of one reply
    max_inbound_length: int = 2000


class OrchestratorConfig(BaseModel):
    """Per-customer pipeline configuration"""
    lock_ttl_seconds: float = 120.0  # Chain entries older than this are treated as settled
    history_limit: int = 50  # Most recent messages sent to the reasoning service


class LoanConfig(BaseModel):
    """Loan product bounds and pricing parameters"""
    min_amount: float = 1000.0
    max_amount: float = 100000.0
    min_installments: int = 3
    max_installments: int = 48
    base_rate: float = 1.99  # Monthly %, before risk adjustments
    min_rate: float = 1.29  # Monthly % floor
    min_age: int = 18
    max_age: int = 100
    max_monthly_income: float = 1000000.0


class ProviderConfig(BaseModel):
    """Third-party provider API configuration"""
    enabled: bool = False
    base_url: str = ""
    api_key: Optional[str] = None
    webhook_secret: Optional[str] = None  # Empty disables signature verification (dev mode)
    timeout: int = 30
    max_retries: int = 3  # Applies to idempotent GET calls only
    backoff_base: float = 0.5


class ProvidersConfig(BaseModel):
    """Bureau, identity verification, signature and funding providers"""
    bureau: ProviderConfig = ProviderConfig()
    kyc: ProviderConfig = ProviderConfig()
    signer: ProviderConfig = ProviderConfig()
    funder: ProviderConfig = ProviderConfig()


class WebhookConfig(BaseModel):
    """Webhook ingestion configuration"""
    idempotency_ttl_seconds: float = 600.0
    idempotency_max_entries: int = 1000
    chat_dedup_ttl_seconds: float = 300.0


class Settings(BaseModel):
    """Application settings loaded from config.yaml"""

    # Project settings
    project_name: str = "Loan Origination API"
    version: str = "1.0.0"
    description: str = "Chat-driven personal loan origination service"
    api_v1_str: str = "/api/v1"

    # Database settings
    database: DatabaseConfig

    @property
    def DATABASE_URL(self) -> str:
        """Construct database URL"""
        return self.database.url

    # Reasoning service settings
    llm: LLMConfig = LLMConfig()

    # Chat transport settings
    chat: ChatConfig = ChatConfig()

    # Conversation pipeline settings
    orchestrator: OrchestratorConfig = OrchestratorConfig()

    # Loan product settings
    loan: LoanConfig = LoanConfig()

    # External providers
    providers: ProvidersConfig = ProvidersConfig()

    # Webhook settings
    webhooks: WebhookConfig = WebhookConfig()

    # CORS settings
    backend_cors_origins: List[str] = []

    @field_validator("backend_cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, list):
            return v
        return []

    # Logging
    log_level: str = "INFO"

    class Config:
        case_sensitive = False


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config.yaml file. If None, looks for config.yaml in:
                    1. Current directory
                    2. Project root (src/../config.yaml)

    Returns:
        Settings: Loaded and validated settings
    """
    if config_path is None:
        # Try current directory first
        current_dir = Path.cwd() / "config.yaml"
        if current_dir.exists():
            config_path = str(current_dir)
        else:
            # Try project root (assuming we're in src/origination/core/)
            project_root = Path(__file__).parent.parent.parent.parent / "config.yaml"
            if project_root.exists():
                config_path = str(project_root)
            else:
                raise FileNotFoundError(
                    "config.yaml not found. Please create config.yaml in the project root."
                )

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, "r") as f:
        config_data = yaml.safe_load(f)

    if config_data is None:
        raise ValueError("Configuration file is empty or invalid")

    return Settings(**config_data)


# Load settings on module import
settings = load_config()
