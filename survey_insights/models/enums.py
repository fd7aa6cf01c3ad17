"""Enums used across the Survey Insights service."""
from enum import Enum


class QuestionType(str, Enum):
    TEXTBOX = "TEXTBOX"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    LIKERT = "LIKERT"

    @property
    def is_aggregated(self) -> bool:
        """Choice and scale answers are tallied instead of summarized verbatim."""
        return self in (QuestionType.MULTIPLE_CHOICE, QuestionType.LIKERT)


class ContextType(str, Enum):
    COURSE_FEEDBACK = "COURSE_FEEDBACK"
    PRODUCT_SATISFACTION = "PRODUCT_SATISFACTION"
    EMPLOYEE_ENGAGEMENT = "EMPLOYEE_ENGAGEMENT"
    EVENT_FEEDBACK = "EVENT_FEEDBACK"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").lower()


class InsightStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
