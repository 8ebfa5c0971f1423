"""Data models and schemas."""

from maintrisk.models.schemas import (
    AccessLevel,
    ActivityConfig,
    MaintainerActivityReport,
    RepoRef,
)

__all__ = ["AccessLevel", "ActivityConfig", "MaintainerActivityReport", "RepoRef"]
