from flask import Blueprint, jsonify
from casedesk.integrations import BackendClient
from casedesk.routes.cases import builder_from_request, FormError
from casedesk.services.results import error_response
from casedesk.services.schema_service import SchemaService
from casedesk.services.submission_service import SubmissionService
from casedesk.utils.logger import get_logger

bp = Blueprint('candidate', __name__)
logger = get_logger(__name__)
schema_service = SchemaService()


@bp.route('/<token>', methods=['GET'])
def get_request(token):
    """Get the checks a candidate's upload link asks for"""
    try:
        result = SubmissionService(BackendClient()).get_request_details(token)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify({
            'candidateName': result['candidateName'],
            'clientName': result['clientName'],
            'checks': schema_service.describe_all(result['checks'])
        }), 200

    except Exception as e:
        logger.error(f"Error loading upload request: {str(e)}")
        return jsonify({'error': 'Failed to load upload request'}), 500


@bp.route('/<token>', methods=['POST'])
def submit(token):
    """Submit the candidate's details and documents"""
    try:
        service = SubmissionService(BackendClient())
        details = service.get_request_details(token)
        if details.get('error'):
            body, status = error_response(details)
            return jsonify(body), status

        requested = details['checks']
        try:
            builder = builder_from_request(requested)
        except FormError as e:
            return jsonify({'error': str(e)}), 400

        result = service.submit_candidate_upload(token, builder, [c.slug for c in requested])
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error submitting candidate upload: {str(e)}")
        return jsonify({'error': 'Submission failed. Please try again.'}), 500
