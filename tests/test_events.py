"""Tests for the structured debug event log."""

from unittest.mock import Mock

from task_extractor.events import DebugEventLog, NullEventSink, create_event_sink


class TestDebugEventLog:
    """Test the ring buffer event log."""

    def test_emit_records_event(self):
        log = DebugEventLog()
        log.emit('info', 'llm-call', 'hello', {'provider': 'ollama'}, 'op-1')

        [event] = log.events
        assert event.level == 'info'
        assert event.category == 'llm-call'
        assert event.data == {'provider': 'ollama'}
        assert event.correlation_id == 'op-1'

    def test_ring_buffer_drops_oldest(self):
        log = DebugEventLog(max_entries=3)
        for i in range(5):
            log.emit('info', 'validation', f"event {i}")

        assert [e.message for e in log.events] == ['event 2', 'event 3', 'event 4']

    def test_start_operation_correlates_events(self):
        log = DebugEventLog()
        first = log.start_operation('file-processing', 'Processing file')
        second = log.start_operation('file-processing', 'Processing file')
        log.emit('info', 'file-processing', 'step', correlation_id=first)

        assert first != second
        assert first.startswith('op-1-')
        assert len(log.for_correlation(first)) == 2
        assert len(log.for_correlation(second)) == 1

    def test_export(self):
        log = DebugEventLog()
        assert log.export() == "No debug logs available."

        log.emit('warn', 'validation', 'Invalid task dropped', {'reason': 'missing task_title'})
        exported = log.export()

        assert exported.startswith("=== Task Extractor Debug Logs ===")
        assert "WARN validation: Invalid task dropped" in exported
        assert '"reason": "missing task_title"' in exported

    def test_clear(self):
        log = DebugEventLog()
        log.emit('info', 'error', 'x')
        log.clear()
        assert log.events == []


class TestCreateEventSink:
    """Test sink selection from configuration."""

    def test_debug_mode_enabled(self):
        sink = create_event_sink(Mock(debug_mode=True, debug_max_entries=50))
        assert isinstance(sink, DebugEventLog)
        assert sink.max_entries == 50

    def test_debug_mode_disabled(self):
        sink = create_event_sink(Mock(debug_mode=False))
        assert isinstance(sink, NullEventSink)
        sink.emit('info', 'llm-call', 'ignored')
        assert sink.start_operation('llm-call', 'ignored') is None
