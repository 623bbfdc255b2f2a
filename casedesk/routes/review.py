import io
from flask import Blueprint, request, jsonify, send_file
from casedesk.integrations import BackendClient
from casedesk.middleware.auth import require_auth, require_admin
from casedesk.models import FileRef
from casedesk.services.report_service import ReportService
from casedesk.services.results import error_response
from casedesk.services.review_service import ReviewService
from casedesk.utils.logger import get_logger

bp = Blueprint('review', __name__)
logger = get_logger(__name__)

VERIFIED_PART_PREFIX = 'verified:'


def _review_service(current_user) -> ReviewService:
    return ReviewService(current_user['id'], BackendClient(token=current_user['token']))


def _verified_files(per_check: bool = False):
    """Verified documents from ``verified:<section>`` parts, or
    ``verified:<check_key>:<section>`` parts when saving every check"""
    files = {}
    for part_name, storage in request.files.items(multi=True):
        if not part_name.startswith(VERIFIED_PART_PREFIX) or not storage or not storage.filename:
            continue
        rest = part_name[len(VERIFIED_PART_PREFIX):]
        file_ref = FileRef.from_storage(storage)
        if per_check:
            check_key, _, section = rest.rpartition(':')
            if not check_key:
                continue
            files.setdefault(check_key, {}).setdefault(section or '_default', []).append(file_ref)
        else:
            files.setdefault(rest or '_default', []).append(file_ref)
    return files


@bp.route('/<case_id>', methods=['GET'])
@require_auth
@require_admin
def get_case(current_user, case_id):
    """Get a case's checks merged with any staged review edits"""
    try:
        result = _review_service(current_user).load_case(case_id)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error loading case {case_id} for review: {str(e)}")
        return jsonify({'error': 'Failed to load case'}), 500


@bp.route('/<case_id>', methods=['PUT'])
@require_auth
@require_admin
def update_case(current_user, case_id):
    """Edit a case's candidate details and check params"""
    try:
        data = request.get_json(silent=True) or {}
        candidate_info = data.get('candidateInfo')
        check_params = data.get('checkParams')
        if candidate_info is not None and not isinstance(candidate_info, dict):
            return jsonify({'error': 'candidateInfo must be an object'}), 400
        if check_params is not None and not isinstance(check_params, dict):
            return jsonify({'error': 'checkParams must be an object'}), 400

        result = _review_service(current_user).update_case_details(case_id, candidate_info, check_params)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error updating case {case_id}: {str(e)}")
        return jsonify({'error': 'Failed to update case. Please try again.'}), 500


@bp.route('/<case_id>/checks/<check_key>', methods=['PATCH'])
@require_auth
@require_admin
def stage_check(current_user, case_id, check_key):
    """Stage status, verified data and comments for one check"""
    try:
        data = request.get_json(silent=True) or {}
        verified_data = data.get('verifiedData')
        if verified_data is not None and not isinstance(verified_data, dict):
            return jsonify({'error': 'verifiedData must be an object'}), 400

        result = _review_service(current_user).stage(
            case_id, check_key,
            status=data.get('status'),
            verified_data=verified_data,
            comments=data.get('comments')
        )
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error staging check {check_key} on case {case_id}: {str(e)}")
        return jsonify({'error': 'Failed to update check'}), 500


@bp.route('/<case_id>/checks/<check_key>/reset', methods=['POST'])
@require_auth
@require_admin
def reset_check(current_user, case_id, check_key):
    """Discard staged edits for one check"""
    try:
        result = _review_service(current_user).reset_check(case_id, check_key)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error resetting check {check_key} on case {case_id}: {str(e)}")
        return jsonify({'error': 'Failed to reset check'}), 500


@bp.route('/<case_id>/checks/<check_key>/save', methods=['POST'])
@require_auth
@require_admin
def save_check(current_user, case_id, check_key):
    """Save one check's staged edits along with any verified documents"""
    try:
        result = _review_service(current_user).save_check(case_id, check_key, _verified_files())
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error saving check {check_key} on case {case_id}: {str(e)}")
        return jsonify({'error': 'Failed to save check'}), 500


@bp.route('/<case_id>/save-all', methods=['POST'])
@require_auth
@require_admin
def save_all(current_user, case_id):
    """Save every check's staged edits in one request"""
    try:
        result = _review_service(current_user).save_all(case_id, _verified_files(per_check=True))
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error saving case {case_id}: {str(e)}")
        return jsonify({'error': 'Failed to save changes'}), 500


@bp.route('/<case_id>/report', methods=['GET'])
@require_auth
@require_admin
def download_report(current_user, case_id):
    """Download the generated PDF report for a case"""
    try:
        result = ReportService(BackendClient(token=current_user['token'])).download(case_id)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return send_file(
            io.BytesIO(result['content']),
            mimetype=result['content_type'],
            as_attachment=True,
            download_name=result['filename']
        )

    except Exception as e:
        logger.error(f"Error downloading report for case {case_id}: {str(e)}")
        return jsonify({'error': 'Failed to download report. Please try again.'}), 500
