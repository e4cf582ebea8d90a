from enum import Enum

class BadgeType(str, Enum):
    DISCIPLINE = "DISCIPLINE"
    DISTANCE = "DISTANCE"
    TIME = "TIME"
    MISSION = "MISSION"
    RANKING = "RANKING"

class GoalType(str, Enum):
    DISTANCE = "DISTANCE"
    FREQUENCY = "FREQUENCY"
    DURATION = "DURATION"

class AttemptStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ACHIEVED = "ACHIEVED"
    NOT_ACHIEVED = "NOT_ACHIEVED"

class InvalidReason(str, Enum):
    # Declaration order is reporting priority
    OVERLAP = "OVERLAP"
    WEEK_MISMATCH = "WEEK_MISMATCH"
    LOW_HEART_RATE = "LOW_HEART_RATE"

class AdmissionStatus(str, Enum):
    ADMITTED = "ADMITTED"
    REJECTED = "REJECTED"
    DUPLICATE = "DUPLICATE"

class CoinTransactionType(str, Enum):
    WEEKLY_POINTS = "WEEKLY_POINTS"
    REWARD_REDEMPTION = "REWARD_REDEMPTION"
    ADJUSTMENT = "ADJUSTMENT"

class DeliveryStatus(str, Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

class TaskType(str, Enum):
    ACTIVITY_BADGES = "ACTIVITY_BADGES"
    MISSION_BADGES = "MISSION_BADGES"
    RANKING_BADGES = "RANKING_BADGES"

class TaskStatus(str, Enum):
    QUEUED = "QUEUED"
    DONE = "DONE"
    FAILED = "FAILED"

# Wildcard entry in sport type filters
ALL_SPORTS = "All"
