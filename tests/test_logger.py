import logging
from flask import Flask
from casedesk.utils.logger import RequestContextFilter, get_logger


def make_record():
    return logging.LogRecord('casedesk.test', logging.INFO, __file__, 1, 'message', None, None)


class TestRequestContextFilter:
    """Test log records carry the request they were written under"""

    def test_outside_request(self):
        """Test records outside a request get placeholders"""
        record = make_record()
        assert RequestContextFilter().filter(record) is True
        assert record.request_line == '-'
        assert record.case_id == '-'

    def test_inside_request(self):
        """Test records name the method, path and case of the current request"""
        app = Flask(__name__)
        app.add_url_rule('/api/admin/cases/<case_id>', 'case', lambda case_id: case_id, methods=['PUT'])

        record = make_record()
        with app.test_request_context('/api/admin/cases/c1', method='PUT'):
            RequestContextFilter().filter(record)
        assert record.request_line == 'PUT /api/admin/cases/c1'
        assert record.case_id == 'c1'

    def test_namespaced_loggers(self):
        """Test module loggers sit under the casedesk logger"""
        assert get_logger('tests.module').name == 'casedesk.tests.module'
        assert get_logger().name == 'casedesk'
