from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class WorkCreate(BaseModel):
    title: str
    image_url: str
    agent_source: str
    description: Optional[str] = None
    external_id: Optional[str] = None
    id: Optional[str] = None
    auto_curate: bool = False


class TriageRequest(BaseModel):
    image_url: Optional[str] = None


class CritiqueRequest(BaseModel):
    work_id: Optional[str] = None
    image_url: Optional[str] = None
    image_base64: Optional[str] = Field(
        None, description="Inline image bytes, base64 encoded"
    )
    curator_agent: Optional[str] = None


class SessionCreate(BaseModel):
    work_ids: List[str]
    session_type: str = "batch"
    name: Optional[str] = None
    curator_agent: Optional[str] = None
    strategy: Optional[str] = None


class CollectionCreate(BaseModel):
    name: str
    curator_agent: str
    description: Optional[str] = None
    is_public: bool = False
    tags: List[str] = Field(default_factory=list)
    work_ids: List[str] = Field(default_factory=list)


class MembershipRequest(BaseModel):
    work_id: str
    action: str = Field("add", pattern="^(add|remove)$")


class BackfillRequest(BaseModel):
    limit: Optional[int] = Field(None, ge=0)
