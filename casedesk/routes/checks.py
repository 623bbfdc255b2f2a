from flask import Blueprint, jsonify
from casedesk.integrations import BackendClient
from casedesk.middleware.auth import require_auth
from casedesk.services.registry_service import RegistryService, group_by_category
from casedesk.services.schema_service import SchemaService
from casedesk.utils.logger import get_logger

bp = Blueprint('checks', __name__)
logger = get_logger(__name__)
schema_service = SchemaService()


@bp.route('/', methods=['GET'])
@require_auth
def list_checks(current_user):
    """Get the check catalog with each check's form sections"""
    try:
        registry = RegistryService(BackendClient(token=current_user['token']))
        result = registry.load()
        if result.get('error'):
            return jsonify({'error': result['error'], 'checks': []}), 502

        checks = result['checks']
        return jsonify({
            'checks': schema_service.describe_all(checks),
            'categories': {
                category: [c.slug for c in members]
                for category, members in group_by_category(checks).items()
            }
        }), 200

    except Exception as e:
        logger.error(f"Error listing checks: {str(e)}")
        return jsonify({'error': 'Failed to load checks'}), 500
