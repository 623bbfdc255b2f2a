import io
import json
import time
import pytest
from unittest.mock import Mock, patch
from jose import jwt
from config.config import Config
from casedesk.database import drop_db
from casedesk.integrations import BackendAPIError, BackendClient
from casedesk.main import create_app


def make_token(role='admin', expires_in=3600, user_id='u1', key=None):
    claims = {'user': {'id': user_id, 'role': role}, 'exp': int(time.time()) + expires_in}
    return jwt.encode(claims, key or Config.JWT_SECRET_KEY, algorithm=Config.JWT_ALGORITHM)


def auth(role='admin', user_id='u1'):
    return {'Authorization': f'Bearer {make_token(role, user_id=user_id)}'}


@pytest.fixture
def app():
    """Application configured for testing"""
    app = create_app('testing')
    yield app
    drop_db()


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def backend():
    """Backend client double returned wherever a route builds a client"""
    client = Mock(spec=BackendClient)
    client.get_checks.return_value = [
        {'name': 'National ID Verification', 'category': 'Identity'},
        {'name': 'UAN', 'category': 'Employment'}
    ]
    client.get_clients.return_value = [{'_id': 'org1', 'name': 'Acme'}]
    targets = ['casedesk.routes.checks', 'casedesk.routes.cases', 'casedesk.routes.review', 'casedesk.routes.candidate']
    patchers = [patch(f'{target}.BackendClient', return_value=client) for target in targets]
    for patcher in patchers:
        patcher.start()
    yield client
    for patcher in patchers:
        patcher.stop()


class TestAuth:
    """Test route authentication"""

    def test_missing_token(self, http):
        """Test requests without a token are refused"""
        response = http.get('/api/checks/')
        assert response.status_code == 401

    def test_expired_token(self, http):
        """Test expired tokens are refused"""
        token = make_token(expires_in=-60)
        response = http.get('/api/checks/', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_wrongly_signed_token(self, http, backend):
        """Test a token signed with another key is refused before anything is staged"""
        token = make_token(key='some-other-key')
        headers = {'Authorization': f'Bearer {token}'}
        assert http.get('/api/admin/cases/c1', headers=headers).status_code == 401
        response = http.patch('/api/admin/cases/c1/checks/uan', headers=headers, json={'status': 'Clear'})
        assert response.status_code == 401
        backend.get_case.assert_not_called()

    def test_token_without_user(self, http, backend):
        """Test tokens that name no user are refused"""
        token = make_token(user_id=None)
        response = http.get('/api/checks/', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_backend_header_accepted(self, http, backend):
        """Test the backend's own auth header works"""
        response = http.get('/api/checks/', headers={'x-auth-token': make_token()})
        assert response.status_code == 200

    def test_role_required(self, http, backend):
        """Test admin routes refuse other roles"""
        response = http.get('/api/admin/cases/c1', headers=auth('client'))
        assert response.status_code == 403


class TestCheckRoutes:
    """Test the check catalog route"""

    def test_list_checks(self, http, backend):
        """Test the catalog comes back with sections and categories"""
        response = http.get('/api/checks/', headers=auth())
        data = response.get_json()
        assert response.status_code == 200
        assert [c['slug'] for c in data['checks']] == ['national_id_verification', 'uan']
        assert data['categories'] == {'Identity': ['national_id_verification'], 'Employment': ['uan']}

    def test_catalog_failure(self, http, backend):
        """Test a catalog failure surfaces the retry message"""
        backend.get_checks.side_effect = BackendAPIError('down', 503)
        response = http.get('/api/checks/', headers=auth())
        assert response.status_code == 502
        assert response.get_json()['error'] == 'Failed to load checks. Try refreshing.'


class TestCaseRoutes:
    """Test case creation routes"""

    def test_form(self, http, backend):
        """Test the form payload carries checks and clients"""
        response = http.get('/api/cases/form', headers=auth('client'))
        data = response.get_json()
        assert response.status_code == 200
        assert data['clients'] == [{'_id': 'org1', 'name': 'Acme'}]
        assert data['errors'] == []

    def test_create_case(self, http, backend):
        """Test a multipart case submission reaches the backend"""
        backend.create_case.return_value = {'_id': 'case-1'}
        response = http.post('/api/cases/', headers=auth(), content_type='multipart/form-data', data={
            'candidateInfo': json.dumps({'candidateName': 'Asha'}),
            'checks': json.dumps(['national_id_verification']),
            'checkDetails': json.dumps({'national_id_verification': {'_self': {'aadhaar': '123', 'pan': ''}}}),
            'file:national_id_verification:_self': (io.BytesIO(b'%PDF-1.4'), 'id.pdf')
        })

        assert response.status_code == 201
        form, files = backend.create_case.call_args[0]
        assert json.loads(form['checks'])[0]['params'] == {'_self': {'aadhaar': '123'}}
        assert len(files) == 1
        assert files[0][0] == 'caseDocuments'
        assert response.get_json()['files'][0]['filename'] == 'id.pdf'

    def test_create_case_validation(self, http, backend):
        """Test validation errors come back as 400"""
        response = http.post('/api/cases/', headers=auth(), content_type='multipart/form-data', data={
            'checks': json.dumps(['national_id_verification'])
        })
        assert response.status_code == 400
        assert 'National ID' in response.get_json()['error']
        backend.create_case.assert_not_called()

    def test_malformed_json_field(self, http, backend):
        """Test malformed JSON form fields are rejected"""
        response = http.post('/api/cases/', headers=auth(), content_type='multipart/form-data',
                             data={'checks': '{not json'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'checks must be valid JSON'

    def test_check_details_wrong_shape(self, http, backend):
        """Test non-object check details are a form error"""
        response = http.post('/api/cases/', headers=auth(), content_type='multipart/form-data', data={
            'checks': json.dumps(['uan']),
            'checkDetails': json.dumps({'uan': ['1001']})
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'checkDetails for uan has the wrong shape'
        backend.create_case.assert_not_called()

    def test_send_link_requires_email(self, http, backend):
        """Test send-link without an email"""
        response = http.post('/api/cases/send-link', headers=auth(), json={'candidateInfo': {}, 'checks': ['uan']})
        assert response.status_code == 400
        backend.create_and_send_link.assert_not_called()

    def test_bulk_template(self, http):
        """Test the template download"""
        response = http.get('/api/cases/bulk/template', headers=auth())
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert 'bulk_upload_template.csv' in response.headers['Content-Disposition']

    def test_bulk_without_checks(self, http, backend):
        """Test bulk creation with no checks selected"""
        response = http.post('/api/cases/bulk', headers=auth(), content_type='multipart/form-data', data={
            'file': (io.BytesIO(b'candidateName,email\nJohn Doe,john@example.com'), 'people.csv'),
            'checks': json.dumps([])
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Please select at least one verification check'


class TestReviewRoutes:
    """Test the admin review routes"""

    CASE = {'_id': 'c1', 'checks': [{'checkType': 'uan', 'status': 'Pending', 'comments': ''}]}

    def test_stage_and_save(self, http, backend):
        """Test loading, staging and a failed save"""
        backend.get_case.return_value = self.CASE
        assert http.get('/api/admin/cases/c1', headers=auth()).status_code == 200

        response = http.patch('/api/admin/cases/c1/checks/uan', headers=auth(), json={'status': 'Clear'})
        assert response.status_code == 200
        assert response.get_json()['check']['status'] == 'Clear'

        backend.update_case.side_effect = BackendAPIError('Server error', 500)
        response = http.post('/api/admin/cases/c1/checks/uan/save', headers=auth(),
                             content_type='multipart/form-data',
                             data={'verified:_default': (io.BytesIO(b'ok'), 'proof.pdf')})
        assert response.status_code == 502

        _, form, parts = backend.update_case.call_args[0]
        assert parts[0][0] == 'verifiedFiles'
        assert json.loads(form['checks'])[0]['status'] == 'Clear'

    def test_staged_edits_are_per_reviewer(self, http, backend):
        """Test one admin's staged values are neither shown to nor saved by another"""
        backend.get_case.return_value = self.CASE
        http.get('/api/admin/cases/c1', headers=auth(user_id='a1'))
        http.patch('/api/admin/cases/c1/checks/uan', headers=auth(user_id='a1'), json={'status': 'Clear'})

        view = http.get('/api/admin/cases/c1', headers=auth(user_id='a2')).get_json()
        assert view['checks'][0]['status'] == 'Pending'

        backend.update_case.return_value = self.CASE
        response = http.post('/api/admin/cases/c1/save-all', headers=auth(user_id='a2'))
        assert response.status_code == 200
        assert json.loads(backend.update_case.call_args[0][1]['checks'])[0]['status'] == 'Pending'

    def test_edit_case(self, http, backend):
        """Test candidate details and check params are sent back with the full check list"""
        backend.get_case.return_value = {
            '_id': 'c1',
            'candidateInfo': {'candidateName': 'Asha'},
            'checks': [{'checkType': 'UAN', 'status': 'Clear', 'params': {'uan': '1001'}}]
        }
        backend.update_case_details.return_value = {'_id': 'c1'}

        response = http.put('/api/admin/cases/c1', headers=auth(), json={
            'candidateInfo': {'candidateName': 'Asha Rao'},
            'checkParams': {'uan': {'uan': '2002'}}
        })
        assert response.status_code == 200
        assert response.get_json()['message'] == 'Case updated successfully!'

        case_id, payload = backend.update_case_details.call_args[0]
        assert case_id == 'c1'
        assert payload['candidateInfo'] == {'candidateName': 'Asha Rao'}
        assert json.loads(payload['checks']) == [{'checkType': 'UAN', 'status': 'Clear', 'params': {'uan': '2002'}}]

    def test_edit_case_shape(self, http, backend):
        """Test malformed edits are refused"""
        response = http.put('/api/admin/cases/c1', headers=auth(), json={'checkParams': ['uan']})
        assert response.status_code == 400
        backend.update_case_details.assert_not_called()

    def test_report(self, http, backend):
        """Test the report is streamed as an attachment"""
        report = Mock()
        report.content = b'%PDF-1.4'
        report.headers = {'Content-Disposition': 'attachment; filename="c1.pdf"', 'Content-Type': 'application/pdf'}
        backend.download_report.return_value = report

        response = http.get('/api/admin/cases/c1/report', headers=auth())
        assert response.status_code == 200
        assert response.data == b'%PDF-1.4'
        assert 'c1.pdf' in response.headers['Content-Disposition']


class TestCandidateRoutes:
    """Test the public candidate routes"""

    def test_request_details(self, http, backend):
        """Test the public link needs no auth"""
        backend.get_request_details.return_value = {
            'candidateName': 'Asha', 'clientName': 'Acme', 'requestedChecks': [{'name': 'UAN'}]}
        response = http.get('/api/public/tok')
        assert response.status_code == 200
        assert response.get_json()['checks'][0]['slug'] == 'uan'

    def test_expired_link(self, http, backend):
        """Test an expired link reports the backend error"""
        backend.get_request_details.side_effect = BackendAPIError('Link expired', 410)
        response = http.post('/api/public/tok', content_type='multipart/form-data', data={})
        assert response.status_code == 410
        assert response.get_json()['error'] == 'Link expired'

    def test_education_index_out_of_range(self, http, backend):
        """Test an education file part past the next free entry is refused"""
        backend.get_request_details.return_value = {
            'candidateName': 'Asha', 'clientName': 'Acme', 'requestedChecks': [{'name': 'Education Verification'}]}
        response = http.post('/api/public/tok', content_type='multipart/form-data', data={
            'education:20000': (io.BytesIO(b'%PDF-1.4'), 'degree.pdf')
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid education entry: 20000'
        backend.submit_candidate_upload.assert_not_called()
