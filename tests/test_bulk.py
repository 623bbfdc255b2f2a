import io
from openpyxl import Workbook
from casedesk.integrations import BackendAPIError
from casedesk.services.bulk_service import (
    BulkService, parse_csv, parse_upload, template_csv, NO_CHECKS_MESSAGE, NO_ROWS_MESSAGE,
    LEGACY_EXCEL_MESSAGE
)


def workbook_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestParsing:
    """Test parsing candidate files"""

    def test_csv_example(self):
        """Test a minimal CSV becomes one candidate row"""
        rows = parse_csv("candidateName,email\nJohn Doe,john@example.com")
        assert rows == [{'candidateName': 'John Doe', 'email': 'john@example.com'}]

    def test_csv_blank_rows_and_short_rows(self):
        """Test blank lines are skipped and short rows padded"""
        rows = parse_csv("candidateName,email,designation\n\n,,\nJane,jane@example.com\n")
        assert rows == [{'candidateName': 'Jane', 'email': 'jane@example.com', 'designation': ''}]

    def test_csv_with_bom(self):
        """Test a UTF-8 byte order mark is ignored"""
        result = parse_upload('people.csv', '\ufeffcandidateName,email\nA,a@example.com'.encode('utf-8'))
        assert result['rows'][0]['candidateName'] == 'A'

    def test_excel(self):
        """Test the first sheet of a workbook is read"""
        content = workbook_bytes([
            ['candidateName', 'email', 'contactNumber'],
            ['John Doe', 'john@example.com', 9876543210],
            [None, None, None]
        ])
        result = parse_upload('people.xlsx', content)
        assert result['rows'] == [
            {'candidateName': 'John Doe', 'email': 'john@example.com', 'contactNumber': '9876543210'}]

    def test_unsupported_extension(self):
        """Test non-spreadsheet uploads are refused"""
        assert parse_upload('people.txt', b'x')['error'] == 'Please upload a CSV or Excel file'

    def test_legacy_excel_refused(self):
        """Test .xls workbooks are refused with a save-as hint"""
        assert parse_upload('people.xls', b'\xd0\xcf\x11\xe0')['error'] == LEGACY_EXCEL_MESSAGE

    def test_corrupt_excel(self):
        """Test unreadable workbooks report a parse failure"""
        assert parse_upload('people.xlsx', b'not a workbook')['error'] == 'Failed to parse Excel file'

    def test_template(self):
        """Test the template header and sample rows"""
        lines = template_csv().splitlines()
        assert lines[0] == 'candidateName,fatherName,email,contactNumber,designation'
        assert len(lines) == 3
        assert parse_csv(template_csv())[0]['email'] == 'john@example.com'


class TestBulkService:
    """Test bulk creation and resends"""

    def test_rejects_without_checks(self, client):
        """Test zero checks is rejected before any backend call"""
        rows = parse_csv("candidateName,email\nJohn Doe,john@example.com")
        result = BulkService(client).create_and_send_links(rows, [])
        assert result['error'] == NO_CHECKS_MESSAGE
        assert 'select at least one verification check' in result['error']
        client.bulk_create_and_send_links.assert_not_called()

    def test_rejects_without_rows(self, client):
        """Test an empty file is rejected"""
        assert BulkService(client).create_and_send_links([], ['uan'])['error'] == NO_ROWS_MESSAGE

    def test_partial_success(self, client):
        """Test local and backend failures are reported alongside successes"""
        client.bulk_create_and_send_links.return_value = {
            'msg': 'Processed',
            'results': {
                'successful': [{'candidateName': 'John Doe', 'caseId': 'c1'}],
                'failed': [{'candidate': {'candidateName': 'Jane'}, 'error': 'Duplicate'}]
            }
        }
        rows = [
            {'candidateName': 'John Doe', 'email': 'john@example.com'},
            {'candidateName': 'Jane', 'email': 'jane@example.com'},
            {'candidateName': '', 'email': 'nobody@example.com'},
            {'candidateName': 'Bad Email', 'email': 'nope'}
        ]
        result = BulkService(client).create_and_send_links(rows, ['UAN', 'Gap Analysis'])

        candidates, checks = client.bulk_create_and_send_links.call_args[0]
        assert len(candidates) == 2
        assert checks == ['uan', 'gap_analysis']
        assert len(result['results']['successful']) == 1
        assert [f['error'] for f in result['results']['failed']] == [
            'candidateName is required', 'Invalid email format', 'Duplicate']

    def test_all_rows_invalid(self, client):
        """Test no backend call is made when every row fails locally"""
        result = BulkService(client).create_and_send_links([{'candidateName': 'A'}], ['uan'])
        assert result['results']['successful'] == []
        assert result['results']['failed'][0]['error'] == 'Email is required'
        client.bulk_create_and_send_links.assert_not_called()

    def test_backend_failure_keeps_local_results(self, client):
        """Test a backend failure still returns locally failed rows"""
        client.bulk_create_and_send_links.side_effect = BackendAPIError('Server error', 500)
        rows = [{'candidateName': 'A', 'email': 'a@example.com'}, {'candidateName': ''}]
        result = BulkService(client).create_and_send_links(rows, ['uan'])
        assert result['status_code'] == 502
        assert len(result['results']['failed']) == 1

    def test_resend_links(self, client):
        """Test resends are reported per case"""
        client.resend_link.side_effect = [{'msg': 'Sent'}, BackendAPIError('Case closed', 400)]
        result = BulkService(client).resend_links(['c1', 'c2'])
        assert result['results']['successful'] == [{'caseId': 'c1', 'message': 'Sent'}]
        assert result['results']['failed'] == [{'candidate': {'caseId': 'c2'}, 'error': 'Case closed'}]

    def test_resend_requires_cases(self, client):
        """Test an empty selection is rejected"""
        assert BulkService(client).resend_links([])['error'] == 'Please select at least one case'
