"""Pydantic request schemas for the room endpoints."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class MemberRequest(BaseModel):
    """Any request made on behalf of a room member."""

    userId: str = Field(min_length=1, description="Stable id of the room member")  # noqa: N815


class SetupRequest(MemberRequest):
    """Complete board layout submitted in one go."""

    ships: List[List[str]] = Field(description="Cells of every ship, e.g. [['A1', 'A2']]")
    land: List[str] = Field(description="Land cells")
    cannons: List[str] = Field(description="Cannon cells, a subset of the land cells")


class AttackRequest(MemberRequest):
    targetId: int = Field(description="In-game id of the attacked player")  # noqa: N815
    position: str = Field(description="Board coordinate such as 'C5'")
