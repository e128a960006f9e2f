from models.session import Session
from models.learner import Learner, RoleCourseMapping
from models.assignment import Assignment, AssignmentLevel, AssignmentSource
from models.schedule import Schedule, TrainingDataset

__all__ = [
    "Session",
    "Learner",
    "RoleCourseMapping",
    "Assignment",
    "AssignmentLevel",
    "AssignmentSource",
    "Schedule",
    "TrainingDataset",
]
