"""Tests for LLM response parsing and validation."""

import json

import pytest

from task_extractor.events import DebugEventLog
from task_extractor.models import TaskExtractionResult
from task_extractor.normalizer import (
    LegacyTaskResponse,
    MultiTaskResponse,
    UnparseableResponse,
    decode_response,
    is_valid_task,
    normalize_response,
    safe_parse_json,
)


def task(**overrides):
    candidate = {
        'task_title': 'Send Q3 budget draft',
        'task_details': 'Share the draft with finance.',
        'due_date': '2025-03-14',
        'priority': 'high',
        'source_excerpt': 'Alex Doe to send the Q3 budget draft',
        'confidence': 'high',
    }
    candidate.update(overrides)
    return candidate


class TestSafeParseJson:
    """Test the cascading repair parser."""

    def test_direct(self):
        assert safe_parse_json('{"found": true}') == {'found': True}

    def test_embedded_in_prose(self):
        assert safe_parse_json('Sure! {"found": false} Hope that helps.') == {'found': False}

    def test_single_quotes(self):
        assert safe_parse_json("{'found': true, 'tasks': []}") == {'found': True, 'tasks': []}

    def test_fenced_code_block(self):
        text = '```json\n{"found": true, "tasks": []}\n```'
        assert safe_parse_json(text) == {'found': True, 'tasks': []}

    @pytest.mark.parametrize('text', [None, '', 'no json here', '{broken', "{'a': it's}"])
    def test_unrecoverable(self, text):
        assert safe_parse_json(text) is None


class TestDecodeResponse:
    """Test classification into response variants."""

    def test_multi_task(self):
        decoded = decode_response('{"found": true, "tasks": [{"task_title": "x"}], "confidence": "medium"}')
        assert decoded == MultiTaskResponse(found=True, tasks=[{'task_title': 'x'}], confidence='medium')

    def test_multi_task_without_found(self):
        decoded = decode_response('{"tasks": []}')
        assert isinstance(decoded, MultiTaskResponse)
        assert decoded.found is None

    def test_legacy(self):
        decoded = decode_response('{"found": true, "task_title": "x"}')
        assert isinstance(decoded, LegacyTaskResponse)
        assert decoded.payload['task_title'] == 'x'

    def test_non_object(self):
        assert isinstance(decode_response('[1, 2]'), UnparseableResponse)

    def test_unknown_shape(self):
        assert isinstance(decode_response('{"answer": 42}'), UnparseableResponse)


class TestIsValidTask:
    """Test per-task structural validation."""

    def test_valid(self):
        assert is_valid_task(task()) == (True, "")

    def test_minimal(self):
        assert is_valid_task({'task_title': 'Call the bank'})[0] is True

    @pytest.mark.parametrize('candidate,reason', [
        ('not a dict', 'not an object'),
        ({}, 'missing task_title'),
        ({'task_title': '   '}, 'missing task_title'),
        ({'task_title': 42}, 'missing task_title'),
        (task(confidence='urgent'), 'invalid confidence'),
        (task(priority='urgent'), 'invalid priority'),
        (task(due_date='14/03/2025'), 'invalid due_date'),
        (task(due_date='2025-03-14T10:00'), 'invalid due_date'),
    ])
    def test_invalid(self, candidate, reason):
        valid, message = is_valid_task(candidate)
        assert valid is False
        assert reason in message

    def test_null_optional_fields_are_allowed(self):
        assert is_valid_task(task(due_date=None, priority=None, confidence=None))[0] is True


class TestNormalizeResponse:
    """Test conversion into TaskExtractionResult."""

    @pytest.mark.parametrize('text', [
        '{"found":true,"tasks":[]}',
        'prose {"found":true,"tasks":[]} more prose',
        "{'found': true, 'tasks': []}",
    ])
    def test_repair_cascade_yields_identical_results(self, text):
        assert normalize_response(text) == TaskExtractionResult(found=True, tasks=[], confidence=None)

    def test_invalid_task_dropped_siblings_kept(self):
        payload = {'found': True, 'tasks': [
            task(task_title='Book venue', confidence='urgent'),
            task(),
            task(task_title='Review contract', confidence='low', priority='low'),
        ]}
        result = normalize_response(json.dumps(payload))

        assert result.found is True
        assert [t.title for t in result.tasks] == ['Send Q3 budget draft', 'Review contract']

    def test_fields_are_clipped_and_converted(self):
        payload = {'found': True, 'tasks': [task(
            task_title='T' * 150,
            task_details='D' * 400,
            source_excerpt='E' * 200,
            contexts='office',
            projects=['Budget', None],
            assignee='Alex',
        )]}
        [extracted] = normalize_response(json.dumps(payload)).tasks

        assert len(extracted.title) == 100
        assert len(extracted.details) == 300
        assert len(extracted.source_excerpt) == 150
        assert extracted.contexts == ['office']
        assert extracted.projects == ['Budget']
        assert extracted.extra == {'assignee': 'Alex'}

    def test_missing_found_inferred_from_tasks(self):
        assert normalize_response('{"tasks": [{"task_title": "Call the bank"}]}').found is True
        assert normalize_response('{"tasks": [{"priority": "high"}]}').found is False

    def test_found_false_with_tasks_key(self):
        result = normalize_response('{"found": false, "tasks": []}')
        assert result == TaskExtractionResult.nothing_found()

    def test_legacy_single_task(self):
        text = json.dumps({'found': True, 'title': 'Send draft', 'details': 'To finance', 'priority': 'medium'})
        result = normalize_response(text)

        assert result.found is True
        [extracted] = result.tasks
        assert extracted.title == 'Send draft'
        assert extracted.details == 'To finance'
        assert extracted.priority == 'medium'

    def test_legacy_not_found(self):
        assert normalize_response('{"found": false}') == TaskExtractionResult.nothing_found()

    def test_legacy_invalid_task(self):
        result = normalize_response('{"found": true, "task_title": "x", "due_date": "tomorrow"}')
        assert result.found is True
        assert result.tasks == []

    @pytest.mark.parametrize('text', [None, '', 'I could not find any tasks.'])
    def test_unparseable_degrades_to_nothing_found(self, text):
        assert normalize_response(text) == TaskExtractionResult.nothing_found()

    def test_events_record_dropped_tasks(self):
        log = DebugEventLog()
        normalize_response(json.dumps({'found': True, 'tasks': [task(priority='urgent')]}), log, 'op-7')

        [event] = log.for_correlation('op-7')
        assert event.message == 'Invalid task dropped'
        assert 'invalid priority' in event.data['reason']
