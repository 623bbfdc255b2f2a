import csv
import io
from typing import Dict, List
from openpyxl import load_workbook
from config.config import Config
from casedesk.integrations import BackendClient, BackendAPIError
from casedesk.services.results import backend_error
from casedesk.utils.keys import normalize_key
from casedesk.utils.validators import validate_candidate_row, validate_file_extension
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)

TEMPLATE_COLUMNS = ['candidateName', 'fatherName', 'email', 'contactNumber', 'designation']
TEMPLATE_ROWS = [
    ['John Doe', 'Robert Doe', 'john@example.com', '9876543210', 'Software Engineer'],
    ['Jane Smith', 'Michael Smith', 'jane@example.com', '9876543211', 'Product Manager'],
]
TEMPLATE_FILENAME = 'bulk_upload_template.csv'

NO_ROWS_MESSAGE = 'Please upload a file with candidate data'
NO_CHECKS_MESSAGE = 'Please select at least one verification check'
LEGACY_EXCEL_MESSAGE = 'Legacy .xls files are not supported. Save the file as .xlsx and upload it again'


def parse_csv(text: str) -> List[Dict]:
    """Candidate rows from CSV text; blank rows are skipped"""
    reader = csv.reader(io.StringIO(text.lstrip('\ufeff')))
    rows = [[cell.strip() for cell in row] for row in reader]
    if not rows:
        return []
    headers = rows[0]
    data = []
    for row in rows[1:]:
        if not any(row):
            continue
        data.append({header: row[index] if index < len(row) else '' for index, header in enumerate(headers) if header})
    return data


def parse_excel(content: bytes) -> List[Dict]:
    """Candidate rows from the first sheet of an Excel workbook"""
    workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows = list(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()

    if not rows:
        return []
    headers = [str(h).strip() if h is not None else '' for h in rows[0]]
    data = []
    for row in rows[1:]:
        values = ['' if v is None else str(v).strip() for v in row]
        if not any(values):
            continue
        data.append({header: values[index] if index < len(values) else ''
                     for index, header in enumerate(headers) if header})
    return data


def parse_upload(filename: str, content: bytes) -> Dict:
    """Parse an uploaded CSV or Excel file into candidate rows"""
    if filename.lower().endswith('.xls'):
        return {'error': LEGACY_EXCEL_MESSAGE}

    valid, error = validate_file_extension(filename, Config.BULK_ALLOWED_EXTENSIONS)
    if not valid:
        return {'error': 'Please upload a CSV or Excel file'}

    extension = filename.rsplit('.', 1)[1].lower()
    if extension == 'csv':
        try:
            return {'success': True, 'rows': parse_csv(content.decode('utf-8-sig'))}
        except (UnicodeDecodeError, csv.Error) as e:
            logger.error(f"Failed to parse CSV upload {filename}: {str(e)}")
            return {'error': 'Failed to parse CSV file'}

    try:
        return {'success': True, 'rows': parse_excel(content)}
    except Exception as e:
        logger.error(f"Failed to parse Excel upload {filename}: {str(e)}")
        return {'error': 'Failed to parse Excel file'}


def template_csv() -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(TEMPLATE_COLUMNS)
    writer.writerows(TEMPLATE_ROWS)
    return buffer.getvalue()


class BulkService:
    """Service for bulk case creation and upload link resends"""

    def __init__(self, client: BackendClient = None):
        self.client = client or BackendClient()

    def create_and_send_links(self, rows: List[Dict], checks: List[str]) -> Dict:
        """Create one case per candidate row and send each an upload link"""
        if not rows:
            return {'error': NO_ROWS_MESSAGE}
        checks = [normalize_key(c) for c in checks or [] if c and str(c).strip()]
        if not checks:
            return {'error': NO_CHECKS_MESSAGE}

        candidates, failed = [], []
        for row in rows:
            valid, error = validate_candidate_row(row)
            if valid:
                candidates.append(row)
            else:
                failed.append({'candidate': row, 'error': error})

        successful = []
        message = None
        if candidates:
            try:
                result = self.client.bulk_create_and_send_links(candidates, checks)
            except BackendAPIError as e:
                logger.error(f"Bulk case creation failed: {e.message}")
                return {**backend_error(e, 'Failed to create cases'), 'results': {'successful': [], 'failed': failed}}

            message = result.get('msg')
            results = result.get('results') or {}
            successful = list(results.get('successful') or [])
            failed = failed + list(results.get('failed') or [])

        logger.info(f"Bulk creation: {len(successful)} succeeded, {len(failed)} failed")
        return {
            'success': True,
            'message': message or f"Created {len(successful)} of {len(rows)} cases",
            'results': {'successful': successful, 'failed': failed}
        }

    def resend_links(self, case_ids: List[str]) -> Dict:
        """Resend upload links case by case, reporting each outcome"""
        case_ids = [c for c in case_ids or [] if c]
        if not case_ids:
            return {'error': 'Please select at least one case'}

        successful, failed = [], []
        for case_id in case_ids:
            try:
                result = self.client.resend_link(case_id)
                successful.append({'caseId': case_id, 'message': result.get('msg') or 'Link resent'})
            except BackendAPIError as e:
                logger.error(f"Resend link failed for case {case_id}: {e.message}")
                failed.append({'candidate': {'caseId': case_id}, 'error': e.message})

        return {'success': True, 'results': {'successful': successful, 'failed': failed}}
