from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
    )

    # Demo app database
    DATABASE_URL: str = Field(default="sqlite:///./querybar-demo.db")
    LOG_LEVEL: str = Field(default="INFO")

    # Wire format shared by DebugConnection and FieldExtractor
    OUTER_GLUE: str = Field(default="|||")
    INNER_GLUE: str = Field(default=":::")
    TIME_PRECISION: int = Field(default=4)
    MEM_PRECISION: int = Field(default=2)

    # Call-site resolution
    LIBRARY_PATHS: list[str] = Field(default_factory=list)
    INCLUDE_DEFAULT_LIBRARY_PATHS: bool = Field(default=True)
    PROXY_FUNCTION_PREFIXES: list[str] = Field(default_factory=lambda: ["_call_with_frames_removed", "run_sync"])
    BASE_CLASS_PREFIXES: list[str] = Field(default_factory=lambda: ["Base"])

    # Rendering
    DEBUG_BAR_ENABLED: bool = Field(default=True)
    EDITOR_URI: str = Field(default="editor://open/?file={file}&line={line}")


settings = Settings()
