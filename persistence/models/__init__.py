"""Persistence models."""
from persistence.models.entities import Base, CourseRecord, LearningSessionRecord
