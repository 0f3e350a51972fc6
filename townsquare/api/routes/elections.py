"""
townsquare.api.routes.elections — Moderator elections
=======================================================
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from townsquare.api.deps import get_config, get_engine, get_principal
from townsquare.api.serializers import round_dict, vote_dict
from townsquare.config import TownsquareConfig
from townsquare.constants import MAX_PRINCIPAL_LENGTH, MAX_ROUND_HOURS
from townsquare.services import election_service

router = APIRouter(tags=["elections"])


class RoundOpen(BaseModel):
    duration_hours: int | None = Field(default=None, ge=1, le=MAX_ROUND_HOURS)


class VoteCast(BaseModel):
    candidate_id: str = Field(min_length=1, max_length=MAX_PRINCIPAL_LENGTH)


@router.post("/communities/{community_id}/elections", status_code=201)
def open_round(
    community_id: int,
    body: RoundOpen | None = None,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
    cfg: TownsquareConfig = Depends(get_config),
):
    hours = body.duration_hours if body and body.duration_hours else cfg.default_round_hours
    election_round = election_service.open_round(
        engine, community_id, actor_id=principal, duration=timedelta(hours=hours),
    )
    return round_dict(election_round)


@router.post("/elections/{round_id}/votes", status_code=201)
def cast_vote(
    round_id: int,
    body: VoteCast,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    vote = election_service.cast_vote(engine, round_id, principal, body.candidate_id)
    return vote_dict(vote)


@router.post("/elections/{round_id}/close")
def close_round(
    round_id: int,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    election_service.close_round(engine, round_id, actor_id=principal)
    return election_service.get_round_results(engine, round_id)


@router.get("/elections/{round_id}")
def get_round(round_id: int, engine=Depends(get_engine)):
    return election_service.get_round_results(engine, round_id)
