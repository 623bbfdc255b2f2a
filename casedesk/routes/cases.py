import json
from flask import Blueprint, Response, request, jsonify
from config.config import Config
from casedesk.integrations import BackendClient
from casedesk.middleware.auth import require_auth, require_case_creator
from casedesk.models import CheckStatus, EducationEntry, FileRef
from casedesk.services.bulk_service import BulkService, parse_upload, template_csv, TEMPLATE_FILENAME
from casedesk.services.registry_service import RegistryService
from casedesk.services.results import error_response
from casedesk.services.schema_service import SchemaService
from casedesk.services.submission_service import SubmissionBuilder, SubmissionService
from casedesk.utils.logger import get_logger

bp = Blueprint('cases', __name__)
logger = get_logger(__name__)
schema_service = SchemaService()


class FormError(ValueError):
    """Malformed multipart form field"""


def json_field(name, default):
    """Decode a JSON-encoded form field, or the default when it is absent"""
    raw = request.form.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = json.loads(raw)
    except ValueError:
        raise FormError(f"{name} must be valid JSON")
    if not isinstance(value, type(default)):
        raise FormError(f"{name} has the wrong shape")
    return value


def _education_step(step, index, *args):
    try:
        step(index, *args)
    except ValueError:
        raise FormError(f"Invalid education entry: {index}")


def builder_from_request(catalog) -> SubmissionBuilder:
    """Replay a submitted form into a SubmissionBuilder.

    Form fields: ``checks`` (slugs), ``checkDetails`` ({slug: {section: {field: value}}}),
    ``subOptions`` ({parent: {selected, map}}) and ``education`` (entries).
    File parts: ``file:<slug>:<section>``, ``education:<index>`` and ``general``.
    """
    builder = SubmissionBuilder(catalog)
    for slug in json_field('checks', []):
        builder.select_check(str(slug))

    for parent, option in json_field('subOptions', {}).items():
        if not isinstance(option, dict):
            continue
        if option.get('selected'):
            builder.set_sub_option(parent, str(option['selected']), is_radio=True)
        for value, checked in (option.get('map') or {}).items():
            builder.set_sub_option(parent, value, checked=bool(checked))

    for slug, sections in json_field('checkDetails', {}).items():
        if sections is None:
            continue
        if not isinstance(sections, dict):
            raise FormError(f"checkDetails for {slug} has the wrong shape")
        for section, values in sections.items():
            if not isinstance(values, dict):
                continue
            for name, value in values.items():
                builder.set_field(slug, section, name, value)

    entries = json_field('education', [])
    if len(entries) > Config.MAX_EDUCATION_ENTRIES:
        raise FormError(f"At most {Config.MAX_EDUCATION_ENTRIES} education entries are allowed")
    for index, entry in enumerate(entries):
        if index >= len(builder.education):
            builder.add_education()
        if not isinstance(entry, dict):
            continue
        for name in EducationEntry.REQUIRED:
            if entry.get(name) is not None:
                _education_step(builder.set_education_field, index, name, str(entry[name]))

    for part_name, storage in request.files.items(multi=True):
        if not storage or not storage.filename:
            continue
        kind, _, rest = part_name.partition(':')
        if kind == 'file':
            slug, _, section = rest.partition(':')
            builder.attach_file(slug, section, FileRef.from_storage(storage))
        elif kind == 'education':
            if not rest.isdigit():
                raise FormError(f"Invalid education file part: {part_name}")
            _education_step(builder.attach_education_file, int(rest), FileRef.from_storage(storage))
        elif kind == 'general':
            builder.add_general_file(FileRef.from_storage(storage))
        else:
            logger.warning(f"Ignoring unexpected file part {part_name}")
    return builder


def _client(current_user) -> BackendClient:
    return BackendClient(token=current_user['token'])


@bp.route('/form', methods=['GET'])
@require_auth
@require_case_creator
def get_form(current_user):
    """Get the checks and client organizations for the case form"""
    try:
        registry = RegistryService(_client(current_user))
        checks = registry.load()
        clients = registry.load_clients()

        errors = [r['error'] for r in (checks, clients) if r.get('error')]
        return jsonify({
            'checks': schema_service.describe_all(checks['checks']),
            'clients': clients['clients'],
            'statuses': CheckStatus.values(),
            'errors': errors
        }), 200

    except Exception as e:
        logger.error(f"Error loading case form: {str(e)}")
        return jsonify({'error': 'Failed to load case form'}), 500


@bp.route('/', methods=['POST'])
@require_auth
@require_case_creator
def create_case(current_user):
    """Create a case with check details and documents"""
    try:
        client = _client(current_user)
        catalog = RegistryService(client).load().get('checks') or []
        try:
            builder = builder_from_request(catalog)
            candidate_info = json_field('candidateInfo', {})
        except FormError as e:
            return jsonify({'error': str(e)}), 400

        result = SubmissionService(client).create_case(
            builder, candidate_info, request.form.get('clientOrganization'))
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 201

    except Exception as e:
        logger.error(f"Error creating case: {str(e)}")
        return jsonify({'error': 'Failed to create case'}), 500


@bp.route('/send-link', methods=['POST'])
@require_auth
@require_case_creator
def send_link(current_user):
    """Create a case and email the candidate an upload link"""
    try:
        data = request.get_json(silent=True) or {}
        checks = data.get('checks')
        if checks is not None and not isinstance(checks, list):
            return jsonify({'error': 'checks must be a list'}), 400

        result = SubmissionService(_client(current_user)).send_link(
            SubmissionBuilder(), data.get('candidateInfo') or {},
            data.get('clientOrganization'), checks)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 201

    except Exception as e:
        logger.error(f"Error sending upload link: {str(e)}")
        return jsonify({'error': 'Failed to send upload link.'}), 500


@bp.route('/bulk', methods=['POST'])
@require_auth
@require_case_creator
def bulk_create(current_user):
    """Create cases from an uploaded CSV or Excel file and send upload links"""
    try:
        upload = request.files.get('file')
        if not upload or not upload.filename:
            return jsonify({'error': 'Please upload a file with candidate data'}), 400

        try:
            checks = json_field('checks', [])
        except FormError as e:
            return jsonify({'error': str(e)}), 400

        parsed = parse_upload(upload.filename, upload.read())
        if parsed.get('error'):
            return jsonify({'error': parsed['error']}), 400

        result = BulkService(_client(current_user)).create_and_send_links(parsed['rows'], checks)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error in bulk case creation: {str(e)}")
        return jsonify({'error': 'Failed to process bulk upload'}), 500


@bp.route('/bulk/template', methods=['GET'])
@require_auth
def bulk_template(current_user):
    """Download the bulk upload CSV template"""
    return Response(
        template_csv(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{TEMPLATE_FILENAME}"'}
    )


@bp.route('/resend-links', methods=['POST'])
@require_auth
@require_case_creator
def resend_links(current_user):
    """Resend upload links for several cases"""
    try:
        data = request.get_json(silent=True) or {}
        case_ids = data.get('caseIds') or []
        if not isinstance(case_ids, list):
            return jsonify({'error': 'caseIds must be a list'}), 400

        result = BulkService(_client(current_user)).resend_links(case_ids)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error resending upload links: {str(e)}")
        return jsonify({'error': 'Failed to resend links'}), 500


@bp.route('/<case_id>/candidate-documents', methods=['POST'])
@require_auth
@require_case_creator
def upload_candidate_documents(current_user, case_id):
    """Upload documents on the candidate's behalf for one check"""
    try:
        check_type = (request.form.get('checkType') or '').strip()
        files = [FileRef.from_storage(f) for f in request.files.getlist('files') if f and f.filename]

        try:
            raw_entries = json_field('education', [])
            if len(raw_entries) > Config.MAX_EDUCATION_ENTRIES:
                raise FormError(f"At most {Config.MAX_EDUCATION_ENTRIES} education entries are allowed")
        except FormError as e:
            return jsonify({'error': str(e)}), 400

        education = []
        for index, raw in enumerate(raw_entries):
            raw = raw if isinstance(raw, dict) else {}
            storage = request.files.get(f"education:{index}")
            education.append(EducationEntry(
                university=str(raw.get('university') or ''),
                degree=str(raw.get('degree') or ''),
                year=str(raw.get('year') or ''),
                file=FileRef.from_storage(storage) if storage and storage.filename else None
            ))

        result = SubmissionService(_client(current_user)).upload_for_candidate(
            case_id, check_type, files, education)
        if result.get('error'):
            body, status = error_response(result)
            return jsonify(body), status

        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error uploading documents for case {case_id}: {str(e)}")
        return jsonify({'error': 'Upload failed'}), 500
