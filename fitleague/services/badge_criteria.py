"""Typed badge criteria, one model per badge type.

Stored criteria keep the camelCase keys the admin tooling writes
(`minMetersDistance`, `numberOfWeeks`, ...); the models accept those or the
snake_case field names.
"""
import uuid
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fitleague.core.exceptions import BadgeCriteriaError
from fitleague.models.badge import Badge
from fitleague.models.enums import BadgeType


class _Criteria(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class DistanceCriteria(_Criteria):
    min_meters_distance: float = Field(alias="minMetersDistance", ge=0)


class TimeCriteria(_Criteria):
    min_minutes: float = Field(alias="minMinutes", ge=0)


class DisciplineCriteria(_Criteria):
    number_of_weeks: int = Field(alias="numberOfWeeks", ge=1)
    min_activities: int = Field(alias="minActivities", ge=1)


class MissionCriteria(_Criteria):
    mission_id: uuid.UUID = Field(alias="missionId")


class RankingCriteria(_Criteria):
    ranking_league_id: uuid.UUID = Field(alias="rankingLeagueId")


BadgeCriteria = Union[DistanceCriteria, TimeCriteria, DisciplineCriteria, MissionCriteria, RankingCriteria]

CRITERIA_MODELS: dict[BadgeType, type[_Criteria]] = {
    BadgeType.DISTANCE: DistanceCriteria,
    BadgeType.TIME: TimeCriteria,
    BadgeType.DISCIPLINE: DisciplineCriteria,
    BadgeType.MISSION: MissionCriteria,
    BadgeType.RANKING: RankingCriteria,
}


def parse_criteria(badge: Badge) -> BadgeCriteria:
    model = CRITERIA_MODELS[BadgeType(badge.type)]
    try:
        return model.model_validate(badge.criteria or {})
    except ValidationError as exc:
        raise BadgeCriteriaError(f"Badge {badge.id} has invalid {badge.type} criteria: {exc.errors()}") from exc
