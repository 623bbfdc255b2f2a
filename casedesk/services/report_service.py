import re
from typing import Dict, Optional
from config.config import Config
from casedesk.integrations import BackendClient, BackendAPIError, BackendTimeoutError
from casedesk.services.results import backend_error
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)

TIMEOUT_MESSAGE = ("Report generation timed out. Please try again "
                   "or contact support if the issue persists.")
FAILURE_MESSAGE = 'Failed to download report. Please try again.'

_FILENAME_PATTERN = re.compile(r'filename[^;=\n]*=(([\'"]).*?\2|[^;\n]*)')


def filename_from_disposition(header: Optional[str]) -> str:
    """Filename from a Content-Disposition header, or the default report name"""
    if header:
        match = _FILENAME_PATTERN.search(header)
        if match and match.group(1):
            name = re.sub(r'[\'"]', '', match.group(1)).strip()
            if name:
                return name
    return Config.DEFAULT_REPORT_FILENAME


class ReportService:
    """Service for downloading generated case reports"""

    def __init__(self, client: BackendClient = None):
        self.client = client or BackendClient()

    def download(self, case_id: str) -> Dict:
        """Fetch the PDF report for a case"""
        try:
            response = self.client.download_report(case_id)
        except BackendTimeoutError as e:
            logger.error(f"Report generation timed out for case {case_id}")
            return {**backend_error(e, TIMEOUT_MESSAGE), 'error': TIMEOUT_MESSAGE}
        except BackendAPIError as e:
            logger.error(f"Report download failed for case {case_id}: {e.message}")
            return {**backend_error(e, FAILURE_MESSAGE), 'error': FAILURE_MESSAGE}

        filename = filename_from_disposition(response.headers.get('Content-Disposition'))
        logger.info(f"Downloaded report {filename} for case {case_id}")
        return {
            'success': True,
            'filename': filename,
            'content': response.content,
            'content_type': response.headers.get('Content-Type') or 'application/pdf'
        }
