from fitleague.models.activity import Activity
from fitleague.models.badge import Badge, UserBadge
from fitleague.models.coins import CoinTransaction
from fitleague.models.mission import Mission, MissionAttempt, MissionProgress
from fitleague.models.outbox import EvaluationTask, UserNotification
from fitleague.models.ranking import RankingCategory, RankingLeague
from fitleague.models.user import User


__all__ = [
    "Activity",
    "Badge",
    "UserBadge",
    "CoinTransaction",
    "Mission",
    "MissionAttempt",
    "MissionProgress",
    "EvaluationTask",
    "UserNotification",
    "RankingCategory",
    "RankingLeague",
    "User",
]
