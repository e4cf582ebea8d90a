import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague import scheduler
from fitleague.core.exceptions import ConflictError
from fitleague.database import get_db
from fitleague.schemas import (
    ActivityCandidate,
    AdmissionResult,
    MissionAttemptResponse,
    MissionFinalizeResponse,
    MissionSignupRequest,
    RotationSummaryResponse,
    StandardResponse,
)
from fitleague.services.activity_pipeline import ActivityPipeline
from fitleague.services.mission_service import MissionService

router = APIRouter()


@router.post("/activities/ingest", response_model=StandardResponse[AdmissionResult])
async def ingest_activity(
    data: ActivityCandidate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await ActivityPipeline.ingest(db, data)
    return StandardResponse(data=result, message=f"Activity {result.status.value.lower()}")


@router.post("/missions/{mission_id}/signup", response_model=StandardResponse[MissionAttemptResponse])
async def signup_for_mission(
    mission_id: uuid.UUID,
    data: MissionSignupRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    attempt = await MissionService.signup(db, data.user_id, mission_id, data.timezone)
    return StandardResponse(data=MissionAttemptResponse.model_validate(attempt), message="Signed up for mission")


@router.post("/missions/{mission_id}/finalize", response_model=StandardResponse[MissionFinalizeResponse])
async def finalize_mission(
    mission_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    summary = await MissionService.finalize(db, mission_id)
    message = "Mission already finalized" if summary.already_inactive else "Mission finalized"
    return StandardResponse(data=MissionFinalizeResponse.model_validate(summary), message=message)


@router.post("/leagues/rotate", response_model=StandardResponse[RotationSummaryResponse])
async def rotate_leagues(request: Request):
    summary = await scheduler.run_rotation(request.app.state.session_factory)
    if summary is None:
        raise ConflictError("A ranking rotation is already running")
    return StandardResponse(data=RotationSummaryResponse.model_validate(summary), message="Ranking rotation complete")
