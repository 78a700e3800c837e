"""
Audit Logger

DESIGN DECISION: Every mutation and every dependency failure is logged.
This provides:
1. Traceability of who changed what
2. Debugging capability when rate feeds or stores misbehave
3. A history of each user's budget changes

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

from typing import Optional
from uuid import UUID

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder
from expense_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_created(
        self,
        owner: str,
        expense_id: UUID,
        name: str,
        amount: str,
    ) -> None:
        await self.log(AuditEventBuilder.expense_created(owner, expense_id, name, amount))

    async def log_expense_updated(
        self,
        owner: str,
        expense_id: UUID,
        changed_fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.expense_updated(owner, expense_id, changed_fields))

    async def log_expense_deleted(self, owner: str, expense_id: UUID) -> None:
        await self.log(AuditEventBuilder.expense_deleted(owner, expense_id))

    async def log_validation_failed(
        self,
        owner: Optional[str],
        entity_type: str,
        issues: list[dict],
    ) -> None:
        """Log rejected input."""
        await self.log(AuditEventBuilder.validation_failed(owner, entity_type, issues))

    async def log_access_denied(
        self,
        owner: str,
        expense_id: UUID,
        operation: str,
    ) -> None:
        """Log an attempt to touch someone else's record."""
        await self.log(AuditEventBuilder.access_denied(owner, expense_id, operation))

    async def log_settings_created(
        self,
        owner: str,
        currency: str,
        monthly_budget: str,
        effective_from: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.settings_created(owner, currency, monthly_budget, effective_from)
        )

    async def log_settings_updated(
        self,
        owner: str,
        currency: str,
        monthly_budget: str,
        effective_from: str,
        budget_changed: bool,
    ) -> None:
        await self.log(
            AuditEventBuilder.settings_updated(
                owner, currency, monthly_budget, effective_from, budget_changed
            )
        )

    async def log_rates_refreshed(self, source: str, currency_count: int) -> None:
        await self.log(AuditEventBuilder.rates_refreshed(source, currency_count))

    async def log_rates_refresh_failed(self, error_message: str) -> None:
        await self.log(AuditEventBuilder.rates_refresh_failed(error_message))

    async def log_summary_computed(self, owner: str, month: str, expense_count: int) -> None:
        await self.log(AuditEventBuilder.summary_computed(owner, month, expense_count))

    async def log_data_exported(self, owner: str, count: int) -> None:
        await self.log(AuditEventBuilder.data_exported(owner, count))

    async def log_session_started(self, owner: str) -> None:
        await self.log(AuditEventBuilder.session_started(owner))

    async def log_session_ended(self, owner: str) -> None:
        await self.log(AuditEventBuilder.session_ended(owner))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        owner: Optional[str] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(service, error_message, owner))
