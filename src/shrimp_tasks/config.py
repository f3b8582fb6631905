"""
Settings loaded from the environment (prefix ``SHRIMP_``) and an optional
``.env`` file.
"""

from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LevelThresholds(BaseModel):
    """Metric values at which a task reaches each complexity level."""

    model_config = ConfigDict(frozen=True)

    medium: int = Field(ge=0)
    high: int = Field(ge=0)
    very_high: int = Field(ge=0)

    @model_validator(mode="after")
    def _ascending(self) -> "LevelThresholds":
        if not self.medium <= self.high <= self.very_high:
            raise ValueError("thresholds must satisfy medium <= high <= very_high")
        return self


class ComplexityThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    description_length: LevelThresholds = LevelThresholds(medium=500, high=1000, very_high=2000)
    dependencies_count: LevelThresholds = LevelThresholds(medium=2, high=5, very_high=10)
    notes_length: LevelThresholds = LevelThresholds(medium=200, high=500, very_high=1000)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SHRIMP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    data_dir: Path = Field(
        default=Path("data"),
        validation_alias=AliasChoices("SHRIMP_DATA_DIR", "DATA_DIR", "data_dir"),
    )
    search_page_size: int = Field(default=5, ge=1)
    # Most-recent archive files opened per search; 0 scans them all
    search_max_archive_files: int = Field(default=10, ge=0)
    reject_dependency_cycles: bool = False
    change_log_enabled: bool = True
    log_level: str = "INFO"
    complexity: ComplexityThresholds = ComplexityThresholds()

    @property
    def tasks_file(self) -> Path:
        return self.data_dir / "tasks.json"

    @property
    def memory_dir(self) -> Path:
        return self.data_dir / "memory"

    @property
    def change_log_file(self) -> Path:
        return self.data_dir / "changes.log"
