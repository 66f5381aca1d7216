"""Electronic signature and governance schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SignatureIn(BaseModel):
    """Password re-entry plus justification."""

    signature_password: str = ""
    signature_reason: str = ""


class GovernanceUpdateRequest(SignatureIn):
    name: str
    description: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class GovernanceRollbackRequest(SignatureIn):
    pass


class GovernanceConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    version: int
    name: str
    description: str | None
    config: dict[str, Any]
    is_active: bool
    rolled_back_from: int | None
    created_by: str
    signature_id: str
    created_at: datetime


class ElectronicSignatureOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    signer_id: str
    action_type: str
    reason: str
    ip_address: str | None
    signed_at: datetime
