"""
Tests for audit logging and configuration.
"""

import asyncio

import pytest

from docengine.audit import AuditLogger, create_correlation_id
from docengine.config import EngineSettings, LoggingSettings, get_settings, validate_all_settings
from docengine.models.audit import AuditEvent, AuditEventType, AuditSeverity
from docengine.services.storage import AuditStorageInterface, InMemoryAuditStorage


class BrokenAuditStorage(AuditStorageInterface):
    """Audit storage that is always down."""

    async def append_event(self, event):
        raise ConnectionError("audit store unreachable")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_events_by_entity(self, entity_type, entity_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:
    """Tests for the audit logger."""

    def test_events_are_persisted(self):
        """Test that events reach the audit storage."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        async def scenario():
            await logger.log_error("boom", "Something failed", correlation_id=correlation_id)
            return await storage.get_events_by_correlation_id(correlation_id)

        events = asyncio.run(scenario())
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR

    def test_storage_failure_is_swallowed(self):
        """Test that a broken audit store never fails the caller."""
        logger = AuditLogger(BrokenAuditStorage())
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description="Test",
        )
        assert asyncio.run(logger.log(event)) is False

    def test_local_only_logger(self):
        """Test that a logger without storage reports success."""
        event = AuditEvent(event_type=AuditEventType.NUMBER_ALLOCATED, description="Allocated")
        assert asyncio.run(AuditLogger().log(event)) is True

    def test_engine_operation_shares_one_correlation_id(self, world, lines):
        """Test that all events of one creation are correlated."""

        async def scenario():
            quote = await world.engine.create_quote(
                world.owner_id, world.project.id, lines, "FRANCE"
            )
            created = await world.audit_storage.get_events_by_entity("quote", quote.id)
            return await world.audit_storage.get_events_by_correlation_id(
                created[0].correlation_id
            )

        events = asyncio.run(scenario())
        assert {e.event_type for e in events} == {
            AuditEventType.NUMBER_ALLOCATED,
            AuditEventType.QUOTE_CREATED,
        }

    def test_correlation_ids_are_unique(self):
        """Test correlation id generation."""
        assert create_correlation_id() != create_correlation_id()


class TestSettings:
    """Tests for configuration."""

    def test_defaults(self):
        """Test the business defaults."""
        engine = EngineSettings()
        assert engine.invoice_due_days == 30
        assert engine.quote_conversion_window_days == 30
        assert engine.number_padding == 4
        assert engine.default_country == "FRANCE"

    def test_environment_override(self, monkeypatch):
        """Test that settings are read from DOCENGINE_ variables."""
        monkeypatch.setenv("DOCENGINE_INVOICE_DUE_DAYS", "45")
        monkeypatch.setenv("DOCENGINE_LOG_LEVEL", "debug")
        assert EngineSettings().invoice_due_days == 45
        assert LoggingSettings().level == "DEBUG"

    def test_unsupported_default_country(self, monkeypatch):
        """Test that the default country must have a tax regime."""
        monkeypatch.setenv("DOCENGINE_DEFAULT_COUNTRY", "SPAIN")
        with pytest.raises(ValueError):
            EngineSettings()

    def test_validate_all_settings(self, monkeypatch):
        """Test the startup check reports broken settings."""
        monkeypatch.setenv("DOCENGINE_LOG_LEVEL", "chatty")
        results = validate_all_settings()
        assert results["engine"] is True
        assert results["logging"] is False

    def test_settings_are_cached(self):
        """Test that get_settings returns one instance."""
        assert get_settings() is get_settings()
