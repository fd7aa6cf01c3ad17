"""Output layer: the completion audit trail."""

from survey_insights.output.audit_logger import CompletionAuditLog

__all__ = ["CompletionAuditLog"]
