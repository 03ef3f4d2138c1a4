"""Pydantic data models for the ZK-Mixer wire formats."""

from pydantic import BaseModel, Field
from typing import List
from datetime import datetime


class MixerEventModel(BaseModel):
    """One audit event as published to indexers."""
    sequence: int = Field(..., ge=0, description="Position in the event stream")
    transaction_id: str = Field(..., description="Transition that emitted the event")
    kind: str = Field(..., description="Event kind")
    payload: str = Field(..., description="Field element (hex)")


class EventFeedModel(BaseModel):
    """Ordered event stream, replayable from genesis."""
    events: List[MixerEventModel] = Field(default_factory=list)


class MerkleWitnessModel(BaseModel):
    """Deposit tree witness."""
    index: int = Field(..., ge=0, description="Leaf index")
    siblings: List[str] = Field(..., description="Sibling path, leaf level first (hex list)")


class MerkleMapWitnessModel(BaseModel):
    """Nullifier map witness."""
    key: str = Field(..., description="Map key (hex)")
    siblings: List[str] = Field(..., description="Sibling path, leaf level first (hex list)")


class MixerStateModel(BaseModel):
    """Public projection of the mixer account."""
    address: str = Field(..., description="Mixer account address")
    denomination: int = Field(..., gt=0, description="Fixed deposit/withdraw amount")
    tree_depth: int = Field(..., description="Deposit tree depth")
    deposit_root: str = Field(..., description="Current deposit root (hex)")
    nullifier_root: str = Field(..., description="Current nullifier root (hex)")
    replay_tag: str = Field(..., description="Domain-separation tag (hex)")
    deposit_count: int = Field(default=0)
    withdrawal_count: int = Field(default=0)
    pool_balance: int = Field(default=0, description="Value held in custody")
    last_update: datetime = Field(default_factory=datetime.now)
