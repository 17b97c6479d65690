# -*- coding: utf-8 -*-
"""
Test suite for structured logging and request context propagation.
"""

import io
import json
import logging
import uuid

import pytest
from flask import Flask, g

from secret_message.services.request_context import (
    get_request_context, get_request_id, init_request_context
)
from secret_message.services.structured_logging import (
    StructuredFormatter, get_logger, init_logging
)


@pytest.fixture
def app():
    """Bare Flask app with only the observability middleware installed."""
    app = Flask(__name__)
    app.config['TESTING'] = True
    init_request_context(app)
    return app


def _record(msg='Test message', **extra_fields):
    record = logging.LogRecord(
        name='test.logger', level=logging.INFO, pathname='test.py', lineno=42,
        msg=msg, args=(), exc_info=None,
    )
    if extra_fields:
        record.extra_fields = extra_fields
    return record


class TestRequestContextMiddleware:

    def test_request_id_consistent_within_request(self, app):
        seen = []

        @app.route('/test')
        def test_route():
            seen.extend(get_request_id() for _ in range(3))
            return {'request_id': get_request_id()}

        response = app.test_client().get('/test')

        assert len(set(seen)) == 1
        assert response.headers['X-Request-ID'] == seen[0]
        uuid.UUID(seen[0])

    def test_different_requests_get_different_ids(self, app):
        @app.route('/test')
        def test_route():
            return {'request_id': get_request_id()}

        client = app.test_client()
        ids = {client.get('/test').get_json()['request_id'] for _ in range(5)}
        assert len(ids) == 5

    def test_context_includes_request_info_and_user(self, app):
        @app.route('/test', methods=['POST'])
        def test_route():
            g.user_id = 'user-1'
            return get_request_context()

        context = app.test_client().post('/test', json={}).get_json()

        assert context['method'] == 'POST'
        assert context['path'] == '/test'
        assert context['user_id'] == 'user-1'
        assert 'duration_ms' in context


class TestStructuredFormatter:

    def test_json_formatting(self):
        output = StructuredFormatter(json_enabled=True).format(_record(message_id='m-1'))

        entry = json.loads(output)
        assert entry['level'] == 'INFO'
        assert entry['logger'] == 'test.logger'
        assert entry['message'] == 'Test message'
        assert entry['message_id'] == 'm-1'

    def test_plain_formatting(self):
        assert StructuredFormatter(json_enabled=False).format(_record()) == 'Test message'

    def test_request_context_is_attached(self, app):
        formatter = StructuredFormatter(json_enabled=True)

        @app.route('/test')
        def test_route():
            return json.loads(formatter.format(_record()))

        response = app.test_client().get('/test')
        entry = response.get_json()
        assert entry['request_id'] == response.headers['X-Request-ID']
        assert entry['path'] == '/test'


class TestStructuredLogger:

    @pytest.fixture
    def captured(self):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter(json_enabled=True))
        logger = logging.getLogger('secret_message.test')
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
        yield stream
        logger.removeHandler(handler)

    def _entries(self, stream):
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    def test_keyword_fields(self, captured):
        get_logger('secret_message.test').info("Message viewed", message_id='m-1', view_count=2)

        entry = self._entries(captured)[-1]
        assert entry['message'] == 'Message viewed'
        assert entry['message_id'] == 'm-1'
        assert entry['view_count'] == 2

    def test_payment_event(self, captured):
        get_logger('secret_message.test').log_payment_event('recorded', provider='stripe')

        entry = self._entries(captured)[-1]
        assert entry['event_type'] == 'payment'
        assert entry['payment_event'] == 'recorded'
        assert entry['provider'] == 'stripe'

    def test_rate_limit_event_is_a_warning(self, captured):
        get_logger('secret_message.test').log_rate_limit_event('widget-ip', path='/v1/messages')

        entry = self._entries(captured)[-1]
        assert entry['level'] == 'WARNING'
        assert entry['scope'] == 'widget-ip'

    def test_exception_includes_traceback(self, captured):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            get_logger('secret_message.test').exception("Render failed")

        entry = self._entries(captured)[-1]
        assert entry['level'] == 'ERROR'
        assert 'RuntimeError: boom' in entry['exception']


class TestLoggingMiddleware:

    def test_requests_are_logged_except_probes(self, app, monkeypatch):
        monkeypatch.setenv('SM_LOG_JSON', 'true')
        init_logging(app)

        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter(json_enabled=True))
        requests_logger = logging.getLogger('secret_message.requests')
        requests_logger.addHandler(handler)

        @app.route('/work')
        def work():
            return {'ok': True}

        @app.route('/health')
        def health():
            return {'ok': True}

        client = app.test_client()
        try:
            client.get('/work')
            client.get('/health')
        finally:
            requests_logger.removeHandler(handler)

        entries = [json.loads(line) for line in stream.getvalue().splitlines() if line]
        assert [e['path'] for e in entries] == ['/work']
        assert entries[0]['event_type'] == 'request_end'
        assert entries[0]['status_code'] == 200
