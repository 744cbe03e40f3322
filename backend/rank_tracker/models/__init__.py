from rank_tracker.models.keyword import RankObservation, TrackedKeyword
from rank_tracker.models.task_execution import TaskExecution
from rank_tracker.models.tracker_settings import TrackerSettingsRecord

__all__ = [
    "RankObservation",
    "TaskExecution",
    "TrackedKeyword",
    "TrackerSettingsRecord",
]
