"""
Audit Models for Expense Tracker

Every mutation and every external dependency failure is logged for audit
purposes. This provides:
1. Traceability of who changed which record
2. Debugging information when a rate feed or store misbehaves
3. Ability to reconstruct the history of a user's budget

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Expense records
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # Rejections
    VALIDATION_FAILED = "validation_failed"
    ACCESS_DENIED = "access_denied"

    # Settings / budget
    SETTINGS_CREATED = "settings_created"
    SETTINGS_UPDATED = "settings_updated"

    # Exchange rates
    RATES_REFRESHED = "rates_refreshed"
    RATES_REFRESH_FAILED = "rates_refresh_failed"

    # Reads
    SUMMARY_COMPUTED = "summary_computed"
    DATA_EXPORTED = "data_exported"

    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"

    # Dependency failures
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who and what
    owner: Optional[str] = Field(
        default=None,
        description="User the event concerns"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'settings', 'rates')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner": self.owner,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner, entity_type,
         entity_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(owner, expense_id, name, amount)
        event = AuditEventBuilder.access_denied(owner, expense_id, "update")
    """

    @staticmethod
    def expense_created(
        owner: str,
        expense_id: UUID,
        name: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            owner=owner,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense created: {name} - {amount}",
            details={
                "name": name,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_updated(
        owner: str,
        expense_id: UUID,
        changed_fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            owner=owner,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense updated: {', '.join(changed_fields) or 'no fields'}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        owner: str,
        expense_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            owner=owner,
            entity_type="expense",
            entity_id=expense_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        owner: Optional[str],
        entity_type: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner=owner,
            entity_type=entity_type,
            description=f"Validation failed with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def access_denied(
        owner: str,
        expense_id: UUID,
        operation: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            owner=owner,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Access denied for {operation}",
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def settings_created(
        owner: str,
        currency: str,
        monthly_budget: str,
        effective_from: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_CREATED,
            owner=owner,
            entity_type="settings",
            description=f"Default settings created ({currency}, budget {monthly_budget})",
            details={
                "currency": currency,
                "monthly_budget": monthly_budget,
                "budget_effective_from": effective_from,
            },
        )

    @staticmethod
    def settings_updated(
        owner: str,
        currency: str,
        monthly_budget: str,
        effective_from: str,
        budget_changed: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            owner=owner,
            entity_type="settings",
            description=f"Settings updated ({currency}, budget {monthly_budget} from {effective_from})",
            details={
                "currency": currency,
                "monthly_budget": monthly_budget,
                "budget_effective_from": effective_from,
                "budget_changed": budget_changed,
            },
            is_user_action=True,
        )

    @staticmethod
    def rates_refreshed(
        source: str,
        currency_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESHED,
            entity_type="rates",
            description=f"Exchange rates refreshed from {source} feed",
            details={
                "source": source,
                "currency_count": currency_count,
            },
        )

    @staticmethod
    def rates_refresh_failed(
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="rates",
            description="Exchange rate refresh failed, keeping previous rates",
            error_message=error_message,
        )

    @staticmethod
    def summary_computed(
        owner: str,
        month: str,
        expense_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_COMPUTED,
            severity=AuditSeverity.DEBUG,
            owner=owner,
            entity_type="summary",
            description=f"Summary for {month} computed over {expense_count} expenses",
            details={
                "month": month,
                "expense_count": expense_count,
            },
        )

    @staticmethod
    def data_exported(
        owner: str,
        count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_EXPORTED,
            owner=owner,
            entity_type="export",
            description=f"Exported {count} expenses",
            details={
                "count": count,
            },
            is_user_action=True,
        )

    @staticmethod
    def session_started(owner: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            owner=owner,
            entity_type="session",
            description="Session started",
            is_user_action=True,
        )

    @staticmethod
    def session_ended(owner: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            owner=owner,
            entity_type="session",
            description="Session ended, state reset",
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        owner: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            owner=owner,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
        )
