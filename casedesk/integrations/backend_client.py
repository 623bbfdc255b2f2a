import json
import requests
from typing import Dict, List, Optional, Tuple
from config.config import Config
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)

# (part name, (filename, stream, content type)) as accepted by requests
FilePart = Tuple[str, Tuple]


class BackendAPIError(Exception):
    """The verification backend rejected a request or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class BackendTimeoutError(BackendAPIError):
    """The backend did not answer within the configured timeout"""


def _multipart_parts(form: Dict, files: Optional[List[FilePart]] = None) -> List:
    """Encode form fields as multipart parts so the body is multipart even without files"""
    parts = [(name, (None, value)) for name, value in (form or {}).items()]
    return parts + list(files or [])


def _error_message(response, fallback: str) -> str:
    """Prefer the message the backend put in its error body"""
    try:
        body = response.json()
    except ValueError:
        text = (response.text or '').strip()
        return text[:500] if text else fallback
    if isinstance(body, dict):
        for key in ('msg', 'message', 'error'):
            if body.get(key):
                return str(body[key])
        return json.dumps(body)
    return fallback


class BackendClient:
    """Wrapper for the verification backend REST API"""

    def __init__(self, token: Optional[str] = None, base_url: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or Config.BACKEND_API_URL).rstrip('/')
        self.session = session or requests.Session()
        self.headers = {}

        if token:
            self.headers[Config.BACKEND_AUTH_HEADER] = token

    def _make_request(self, method: str, endpoint: str, data: Dict = None, files: List = None,
                      timeout: int = None, raw: bool = False):
        """Make API request to the backend"""
        url = f"{self.base_url}{endpoint}"
        timeout = timeout or Config.REQUEST_TIMEOUT_SECONDS

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=self.headers,
                json=data if files is None else None,
                files=files,
                timeout=timeout
            )
        except requests.exceptions.Timeout:
            logger.error(f"Backend timeout after {timeout}s: {method} {endpoint}")
            raise BackendTimeoutError(f"Request timed out after {timeout} seconds")
        except requests.exceptions.RequestException as e:
            logger.error(f"Backend API error: {method} {endpoint}: {str(e)}")
            raise BackendAPIError("Could not reach the verification server")

        if response.status_code >= 400:
            message = _error_message(response, f"Request failed with status {response.status_code}")
            logger.error(f"Backend API error {response.status_code}: {method} {endpoint}: {message}")
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            raise BackendAPIError(message, response.status_code, payload if isinstance(payload, dict) else {})

        if raw:
            return response
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            logger.error(f"Backend returned non-JSON body for {method} {endpoint}")
            raise BackendAPIError("Unexpected response from the verification server", response.status_code)

    # -------------------- Catalog --------------------

    def get_checks(self) -> List[Dict]:
        """List available verification checks"""
        result = self._make_request('GET', '/checks')
        return result if isinstance(result, list) else []

    def get_clients(self) -> List[Dict]:
        """List client organizations"""
        result = self._make_request('GET', '/clients')
        return result if isinstance(result, list) else []

    # -------------------- Cases --------------------

    def create_case(self, form: Dict, files: List[FilePart]) -> Dict:
        """Create a case with admin-entered details and documents"""
        return self._make_request('POST', '/cases', files=_multipart_parts(form, files))

    def create_and_send_link(self, payload: Dict) -> Dict:
        """Create a case and email the candidate an upload link"""
        return self._make_request('POST', '/cases/create-and-send-link', data=payload,
                                  timeout=Config.SEND_LINK_TIMEOUT_SECONDS)

    def bulk_create_and_send_links(self, candidates: List[Dict], checks: List[str]) -> Dict:
        """Create cases and send upload links for many candidates"""
        return self._make_request('POST', '/cases/bulk-create-and-send-links',
                                  data={'candidates': candidates, 'checks': checks},
                                  timeout=Config.SEND_LINK_TIMEOUT_SECONDS)

    def resend_link(self, case_id: str) -> Dict:
        """Resend the candidate upload link for a case"""
        return self._make_request('POST', '/cases/resend-link', data={'caseId': case_id},
                                  timeout=Config.SEND_LINK_TIMEOUT_SECONDS)

    def get_case(self, case_id: str) -> Dict:
        """Get a case with its checks, uploads and documents"""
        return self._make_request('GET', f'/cases/{case_id}')

    def update_case(self, case_id: str, form: Dict, files: List[FilePart]) -> Dict:
        """Replace a case's check list and attach verified files"""
        return self._make_request('PUT', f'/cases/{case_id}', files=_multipart_parts(form, files))

    def update_case_details(self, case_id: str, payload: Dict) -> Dict:
        """Replace a case's candidate details and check list"""
        return self._make_request('PUT', f'/cases/{case_id}', data=payload)

    def upload_for_candidate(self, case_id: str, form: Dict, files: List[FilePart]) -> Dict:
        """Upload documents on the candidate's behalf"""
        return self._make_request('POST', f'/cases/{case_id}/upload-for-candidate', files=_multipart_parts(form, files))

    def download_report(self, case_id: str) -> requests.Response:
        """Fetch the generated PDF report for a case"""
        return self._make_request('GET', f'/cases/{case_id}/report',
                                  timeout=Config.REPORT_TIMEOUT_SECONDS, raw=True)

    # -------------------- Public candidate link --------------------

    def get_request_details(self, token: str) -> Dict:
        """Get the candidate name, client and requested checks for an upload link"""
        return self._make_request('GET', f'/public/request-details/{token}')

    def submit_candidate_upload(self, token: str, form: Dict, files: List[FilePart]) -> Dict:
        """Submit the candidate's details and documents"""
        return self._make_request('POST', f'/public/upload/{token}', files=_multipart_parts(form, files))
