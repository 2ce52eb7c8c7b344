"""Pydantic models: certificate build request (identity, validity, CA flag, policy)."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ExtensionPolicy(str, Enum):
    """Which extension set the builder attaches."""
    CA_ROOT = "ca_root"
    SERVER_LEAF = "server_leaf"


class CertificateRequest(BaseModel):
    """Inputs for one certificate build."""
    common_name: str
    policy: ExtensionPolicy
    is_ca: Optional[bool] = None  # None: derived from policy
    path_length: Optional[int] = None
    validity_days: int = Field(default=365, gt=0)
    not_before: Optional[datetime] = None  # default: now (UTC)
    key_size: int = Field(default=2048, ge=1024)
    serial_number: Optional[int] = None  # default: random 159-bit

    @field_validator("common_name")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("common_name must not be empty")
        return value
