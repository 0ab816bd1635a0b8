"""Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
Each storage backend has its own settings block with a distinct env prefix.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

KNOWN_BACKENDS = ("neo4j", "memgraph", "sql", "memory")


class Neo4jSettings(BaseSettings):
    """Neo4j connection configuration."""

    model_config = SettingsConfigDict(env_prefix="NEO4J_")

    uri: str = "neo4j://127.0.0.1:7687"
    user: str = "neo4j"
    password: SecretStr = SecretStr("password")
    database: str = "neo4j"

    # Driver pool settings
    max_connection_pool_size: int = Field(default=20, ge=1, le=500)
    connection_acquisition_timeout: float = Field(default=10.0, ge=0.5)
    connection_timeout: float = Field(default=10.0, ge=0.5)

    # SHOW DATABASES can hang on an unhealthy cluster
    list_databases_timeout: float = Field(default=8.0, ge=0.5)


class MemgraphSettings(BaseSettings):
    """Memgraph connection configuration.

    Memgraph speaks Bolt, so the Neo4j driver is reused. Authentication is
    off by default on Memgraph, hence the empty credentials.
    """

    model_config = SettingsConfigDict(env_prefix="MEMGRAPH_")

    uri: str = "bolt://127.0.0.1:7688"
    user: str = ""
    password: SecretStr = SecretStr("")

    max_connection_pool_size: int = Field(default=20, ge=1, le=500)
    connection_acquisition_timeout: float = Field(default=10.0, ge=0.5)
    connection_timeout: float = Field(default=10.0, ge=0.5)


class SQLSettings(BaseSettings):
    """Relational backend configuration (PostgreSQL, SQL Server or SQLite)."""

    model_config = SettingsConfigDict(env_prefix="SQL_")

    dialect: Literal["postgresql", "mssql", "sqlite"] = "postgresql"
    host: str = "localhost"
    port: int = 5432
    user: str = "graphlens"
    password: SecretStr = SecretStr("graphlens")
    database: str = "graph_db"

    # SQLite keeps one file per database in this directory
    sqlite_directory: Path = Path("./data")

    # ODBC driver name, only used by the mssql dialect
    odbc_driver: str = "ODBC Driver 18 for SQL Server"

    # Connection pool settings
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=5, ge=0, le=50)
    pool_timeout: float = Field(default=10.0, ge=0.5)
    pool_recycle: int = Field(default=1800, ge=60)

    # SQL Server caps a statement at 2100 bound parameters
    max_parameters: int = Field(default=2100, ge=10)

    echo: bool = False

    def async_url(self, database: str | None = None) -> str:
        """Construct an async SQLAlchemy URL for the given database."""
        name = database or self.database
        password = self.password.get_secret_value()

        if self.dialect == "sqlite":
            path = self.sqlite_directory / f"{name}.db"
            return f"sqlite+aiosqlite:///{path}"

        if self.dialect == "mssql":
            driver = self.odbc_driver.replace(" ", "+")
            return (
                f"mssql+aioodbc://{self.user}:{password}@{self.host}:{self.port}/{name}"
                f"?driver={driver}&TrustServerCertificate=yes"
            )

        return f"postgresql+asyncpg://{self.user}:{password}@{self.host}:{self.port}/{name}"

    @property
    def admin_database(self) -> str | None:
        """Maintenance database used for CREATE/DROP DATABASE."""
        if self.dialect == "postgresql":
            return "postgres"
        if self.dialect == "mssql":
            return "master"
        return None


class CacheSettings(BaseSettings):
    """Full-graph result cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    ttl_seconds: int = Field(default=300, ge=0, le=86400)
    check_period_seconds: float = Field(default=60.0, ge=1.0)


class TraversalSettings(BaseSettings):
    """Neighbor and impact traversal limits."""

    model_config = SettingsConfigDict(env_prefix="TRAVERSAL_")

    max_depth: int = Field(default=15, ge=1, le=15)
    default_neighbor_depth: int = Field(default=1, ge=1, le=15)
    default_impact_depth: int = Field(default=5, ge=1, le=15)


class IngestionSettings(BaseSettings):
    """Batch ingestion configuration."""

    model_config = SettingsConfigDict(env_prefix="INGESTION_")

    # Rows per UNWIND statement for Cypher backends
    cypher_batch_size: int = Field(default=500, ge=1, le=50000)

    # Upper bound on rows per INSERT for SQL, below the parameter ceiling
    sql_max_batch_rows: int = Field(default=500, ge=1, le=10000)


class APISettings(BaseSettings):
    """HTTP API configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "127.0.0.1"
    port: int = 8080
    workers: int = Field(default=1, ge=1, le=32)
    reload: bool = False

    # Stored as comma-separated strings, converted to lists via properties
    cors_origins_str: str = Field(default="*", alias="cors_origins")
    backends_str: str = Field(default="memory", alias="backends")

    default_backend: str = "memory"
    gzip_minimum_size: int = Field(default=1024, ge=0)

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def backends(self) -> list[str]:
        """Get enabled backend identifiers as a list."""
        return [b.strip().lower() for b in self.backends_str.split(",") if b.strip()]

    @field_validator("backends_str")
    @classmethod
    def validate_backends(cls, v: str) -> str:
        """Reject unknown backend identifiers early."""
        for name in v.split(","):
            name = name.strip().lower()
            if name and name not in KNOWN_BACKENDS:
                raise ValueError(
                    f"Unknown backend '{name}'. Supported values: {', '.join(KNOWN_BACKENDS)}"
                )
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    include_timestamp: bool = True
    include_caller: bool = False


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application info
    app_name: str = "GraphLens"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Sub-configurations
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    memgraph: MemgraphSettings = Field(default_factory=MemgraphSettings)
    sql: SQLSettings = Field(default_factory=SQLSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    traversal: TraversalSettings = Field(default_factory=TraversalSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
