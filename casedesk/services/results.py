from typing import Dict, Tuple
from casedesk.integrations import BackendAPIError, BackendTimeoutError


def backend_error(e: BackendAPIError, fallback: str) -> Dict:
    """Turn a backend exception into the service error dict"""
    if isinstance(e, BackendTimeoutError):
        return {'error': e.message or fallback, 'status_code': 504, 'timeout': True}
    status_code = e.status_code if e.status_code and e.status_code < 500 else 502
    return {'error': e.message or fallback, 'status_code': status_code}


def not_found(message: str) -> Dict:
    return {'error': message, 'status_code': 404}


def conflict(message: str) -> Dict:
    return {'error': message, 'status_code': 409}


def error_response(result: Dict) -> Tuple[Dict, int]:
    """Response body and HTTP status for a service error dict"""
    body = {k: v for k, v in result.items() if k != 'status_code'}
    return body, result.get('status_code', 400)
