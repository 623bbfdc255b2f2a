import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from config.config import Config
from casedesk.integrations import BackendClient, BackendAPIError
from casedesk.models.check import CheckDefinition, SELF_SECTION
from casedesk.models.submission import EducationEntry, FileDescriptor, FileRef
from casedesk.services.check_types import (
    behavior_for, resolve_slug, EDUCATION, NATIONAL_ID, EDUCATION_FIELDS_MESSAGE
)
from casedesk.services.registry_service import local_schema_for
from casedesk.services.results import backend_error
from casedesk.services.schema_service import id_fields_for
from casedesk.utils.keys import normalize_key, has_any_value
from casedesk.utils.validators import validate_send_link_email
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)

SUB_OPTION_SEPARATOR = '__'
NO_CHECKS_FOR_LINK = ("Please select at least one verification check "
                      "for which the candidate should upload documents.")


# -------------------- Immutable tree helpers --------------------

def assoc_in(tree: Dict, path: Tuple[str, ...], value) -> Dict:
    """Return a copy of tree with value at path; only dicts along the path are copied"""
    head, rest = path[0], path[1:]
    updated = dict(tree or {})
    if rest:
        child = updated.get(head)
        updated[head] = assoc_in(child if isinstance(child, dict) else {}, rest, value)
    else:
        updated[head] = value
    return updated


def dissoc_in(tree: Dict, path: Tuple[str, ...]) -> Dict:
    """Return a copy of tree without the leaf at path, pruning parents left empty"""
    head, rest = path[0], path[1:]
    if head not in (tree or {}):
        return tree
    updated = dict(tree)
    if rest:
        child = dissoc_in(updated[head], rest) if isinstance(updated[head], dict) else updated[head]
        if isinstance(child, dict) and not child:
            del updated[head]
        else:
            updated[head] = child
    else:
        del updated[head]
    return updated


def strip_blank(values: Dict) -> Dict:
    return {k: v for k, v in (values or {}).items() if not (isinstance(v, str) and v.strip() == '') and v is not None}


@dataclass
class CasePayload:
    """Form fields plus named file parts, with one descriptor per file part"""
    data: Dict[str, str] = field(default_factory=dict)
    files: List[Tuple[str, FileRef]] = field(default_factory=list)
    descriptors: List[FileDescriptor] = field(default_factory=list)

    def add_file(self, part_name: str, file_ref: FileRef, descriptor: FileDescriptor):
        self.files.append((part_name, file_ref))
        self.descriptors.append(descriptor)

    def parts(self) -> List[Tuple]:
        """File parts in the form accepted by requests"""
        return [(name, ref.as_part()) for name, ref in self.files]


class SubmissionBuilder:
    """Accumulates per-check, per-section input and serializes it for the backend"""

    def __init__(self, catalog: Optional[List[CheckDefinition]] = None):
        self.catalog = list(catalog or [])
        self.selected: Dict[str, bool] = {}
        self.details: Dict[str, Dict[str, Dict]] = {}
        self.sub_options: Dict[str, Dict] = {}
        self.files: Dict[str, Dict[str, FileRef]] = {}
        self.education: Tuple[EducationEntry, ...] = (EducationEntry(),)
        self.general_files: Tuple[FileRef, ...] = ()

    # -------------------- Selection --------------------

    def select_check(self, slug: str, selected: bool = True):
        """Select or deselect a check; deselecting drops its entered data"""
        slug = normalize_key(slug)
        if selected:
            self.selected = assoc_in(self.selected, (slug,), True)
            return
        mirror_prefix = f"{slug}{SUB_OPTION_SEPARATOR}"
        self.selected = {k: v for k, v in self.selected.items() if k != slug and not k.startswith(mirror_prefix)}
        self.details = dissoc_in(self.details, (slug,))
        self.files = dissoc_in(self.files, (slug,))
        self.sub_options = dissoc_in(self.sub_options, (slug,))

    def set_sub_option(self, parent: str, value: str, is_radio: bool = False, checked: bool = True):
        """Record a legacy sub-option; checkbox sub-options are mirrored into the selection"""
        parent = normalize_key(parent)
        normalized = normalize_key(value)
        if is_radio:
            self.sub_options = assoc_in(self.sub_options, (parent, 'selected'), value)
            return
        if checked:
            self.sub_options = assoc_in(self.sub_options, (parent, 'map', normalized), True)
        else:
            self.sub_options = dissoc_in(self.sub_options, (parent, 'map', normalized))
        self.selected = assoc_in(self.selected, (f"{parent}{SUB_OPTION_SEPARATOR}{normalized}",), bool(checked))

    def active_checks(self) -> List[str]:
        """Selected parent check slugs; sub-option mirror keys never count"""
        if self.catalog:
            parents = {c.slug for c in self.catalog}
            return [slug for slug, on in self.selected.items() if on and slug in parents]
        return [slug for slug, on in self.selected.items() if on and SUB_OPTION_SEPARATOR not in slug]

    def definition(self, slug: str) -> Optional[CheckDefinition]:
        return next((c for c in self.catalog if c.slug == slug), None)

    # -------------------- Fields and files --------------------

    def set_field(self, slug: str, section: str, name: str, value):
        slug = normalize_key(slug)
        self.details = assoc_in(self.details, (slug, section or SELF_SECTION, name), value)

    def attach_file(self, slug: str, section: str, file_ref: FileRef):
        """Select a file for a section slot, replacing any unsent file there"""
        slug = normalize_key(slug)
        self.files = assoc_in(self.files, (slug, section or SELF_SECTION), file_ref)

    def remove_file(self, slug: str, section: str):
        slug = normalize_key(slug)
        section = section or SELF_SECTION
        self.files = dissoc_in(self.files, (slug, section))
        if (self.details.get(slug) or {}).get(section) == {}:
            self.details = dissoc_in(self.details, (slug, section))

    # -------------------- Education --------------------

    def add_education(self):
        self.education = self.education + (EducationEntry(),)

    def remove_education(self, index: int):
        """Remove an entry; removing the last remaining one clears it instead"""
        if len(self.education) <= 1:
            self.education = (EducationEntry(),)
            return
        self.education = tuple(e for i, e in enumerate(self.education) if i != index)

    def _education_slot(self, index: int) -> List[EducationEntry]:
        """Entries with room at ``index``; only the next free slot may be opened"""
        if index < 0 or index > len(self.education) or index >= Config.MAX_EDUCATION_ENTRIES:
            raise ValueError(f"Invalid education entry: {index}")
        entries = list(self.education)
        if index == len(entries):
            entries.append(EducationEntry())
        return entries

    def set_education_field(self, index: int, name: str, value: str):
        if name not in EducationEntry.REQUIRED:
            raise ValueError(f"Unknown education field: {name}")
        entries = self._education_slot(index)
        entry = entries[index]
        entries[index] = EducationEntry(**{**entry.to_dict(), name: value}, file=entry.file)
        self.education = tuple(entries)

    def attach_education_file(self, index: int, file_ref: Optional[FileRef]):
        entries = self._education_slot(index)
        entries[index] = EducationEntry(**entries[index].to_dict(), file=file_ref)
        self.education = tuple(entries)

    def remove_education_file(self, index: int):
        if index < len(self.education):
            self.attach_education_file(index, None)

    def add_general_file(self, file_ref: FileRef):
        self.general_files = self.general_files + (file_ref,)

    # -------------------- Validation --------------------

    def validate_national_id(self, checks: List[str]) -> Optional[str]:
        if NATIONAL_ID not in checks:
            return None
        definition = self.definition(NATIONAL_ID) or CheckDefinition(NATIONAL_ID, 'National ID Verification')
        if definition.schema is None:
            definition.schema = local_schema_for(definition)
        if definition.schema is None:
            return None
        validate = behavior_for(NATIONAL_ID).validate
        return validate(self.details.get(NATIONAL_ID) or {}, id_fields_for(definition))

    def validate_education(self) -> Optional[str]:
        """Any entry with a value or a file needs all three details"""
        for index, entry in enumerate(self.education):
            if entry.is_touched and not entry.is_complete:
                return f"Education entry #{index + 1}: {EDUCATION_FIELDS_MESSAGE}"
        return None

    def validate_case(self) -> Optional[str]:
        """Validation for direct case creation; zero checks is allowed"""
        checks = self.active_checks()
        error = self.validate_national_id(checks)
        if error:
            return error
        if EDUCATION in checks:
            return self.validate_education()
        return None

    def validate_candidate(self, requested: List[str]) -> Optional[str]:
        error = self.validate_national_id(requested)
        if error:
            return error
        if EDUCATION in requested:
            return self.validate_education()
        return None

    # -------------------- Serialization --------------------

    def params_for(self, slug: str) -> Dict:
        """Flattened params for one check, blank values dropped"""
        params = {}
        options = self.sub_options.get(slug) or {}
        if options.get('selected'):
            params['subOption'] = options['selected']
        if options.get('map'):
            params['subOptions'] = dict(options['map'])

        for section, values in (self.details.get(slug) or {}).items():
            cleaned = strip_blank(values) if isinstance(values, dict) else values
            if cleaned:
                params[section] = cleaned

        behavior = behavior_for(slug)
        if behavior.serialize:
            params = behavior.serialize(params, options)
        return params

    def _legacy_blobs(self, checks: List[str]) -> Dict[str, str]:
        blobs = {}
        for slug in checks:
            behavior = behavior_for(slug)
            sections = self.details.get(slug)
            if not behavior.legacy_blob or not sections:
                continue
            if behavior.multi_section_comments:
                blob = {key: strip_blank(values) for key, values in sections.items() if has_any_value(values)}
            else:
                blob = strip_blank(sections.get(SELF_SECTION))
            if blob:
                blobs[behavior.legacy_blob] = json.dumps(blob)
        return blobs

    def build_case_payload(self, candidate_info: Dict, client_organization: Optional[str] = None) -> CasePayload:
        """Multipart payload for direct case creation"""
        checks = self.active_checks()
        payload = CasePayload()
        payload.data['candidateInfo'] = json.dumps(candidate_info or {})
        if client_organization:
            payload.data['clientOrganization'] = client_organization

        checks_payload = [
            {'checkType': slug, 'status': 'Pending', 'comments': '', 'params': self.params_for(slug)}
            for slug in checks
        ]
        payload.data['checks'] = json.dumps(checks_payload)
        payload.data.update(self._legacy_blobs(checks))

        for slug, sections in self.files.items():
            check_index = checks.index(slug) if slug in checks else None
            for section, file_ref in sections.items():
                field_key = f"{normalize_key(slug)}__{normalize_key(section)}"
                payload.add_file('caseDocuments', file_ref,
                                 FileDescriptor(file_ref.filename, check_index, slug, section, field_key))

        if EDUCATION in checks:
            check_index = checks.index(EDUCATION)
            for index, entry in enumerate(self.education):
                if entry.file is not None:
                    payload.add_file('caseDocuments', entry.file, FileDescriptor(
                        entry.file.filename, check_index, EDUCATION, SELF_SECTION,
                        f"{EDUCATION}__document_{index}"))

        for index, file_ref in enumerate(self.general_files):
            payload.add_file('caseDocuments', file_ref, FileDescriptor(
                file_ref.filename, None, 'general', SELF_SECTION,
                f"general__{index}__{normalize_key(file_ref.filename)}"))

        if payload.descriptors:
            payload.data['uploadFieldKeys'] = json.dumps([d.field_key for d in payload.descriptors])
        if self.details:
            payload.data['checkDetails'] = json.dumps(
                {slug: sections for slug, sections in self.details.items() if slug in checks})
        if EDUCATION in checks:
            payload.data['educationDetails'] = json.dumps(
                [e.to_dict() for e in self.education if e.has_values])
        return payload

    def build_candidate_payload(self, requested: List[str]) -> CasePayload:
        """Multipart payload for a candidate's self-service submission"""
        payload = CasePayload()
        details = {slug: sections for slug, sections in self.details.items()}

        if EDUCATION in requested:
            entries = [e.to_dict() for e in self.education if e.has_values]
            if entries:
                details[EDUCATION] = {SELF_SECTION: entries}
        payload.data['checkDetails'] = json.dumps(details)

        for slug, sections in self.files.items():
            if slug == EDUCATION or not sections:
                continue
            section, file_ref = next(iter(sections.items()))
            check_index = requested.index(slug) if slug in requested else None
            payload.add_file(slug, file_ref, FileDescriptor(file_ref.filename, check_index, slug, section, slug))

        if EDUCATION in requested:
            check_index = requested.index(EDUCATION)
            for index, entry in enumerate(self.education):
                if entry.file is not None:
                    part_name = f"{EDUCATION}_{index}"
                    payload.add_file(part_name, entry.file, FileDescriptor(
                        entry.file.filename, check_index, EDUCATION, SELF_SECTION, part_name))
        return payload

    def build_send_link_payload(self, candidate_info: Dict, client_organization: Optional[str] = None,
                                checks: Optional[List[str]] = None) -> Tuple[Optional[Dict], Optional[str]]:
        """JSON body for create-and-send-link, or an error message"""
        valid, error = validate_send_link_email(candidate_info)
        if not valid:
            return None, error

        chosen = checks if checks else self.active_checks()
        chosen = [str(c).strip() for c in chosen if c and str(c).strip()]
        if not chosen:
            return None, NO_CHECKS_FOR_LINK

        return {
            'candidateInfo': candidate_info,
            'checks': chosen,
            'clientOrganization': client_organization or (candidate_info or {}).get('clientOrganization')
        }, None


def build_candidate_documents_upload(checks: List[Dict], check_type: str, files: List[FileRef],
                                     education: Optional[List[EducationEntry]] = None
                                     ) -> Tuple[Optional[CasePayload], Optional[str]]:
    """Upload documents on a candidate's behalf for one existing check of a case"""
    if not check_type:
        return None, "Please select a check type"

    is_education = 'education' in check_type.lower()
    if is_education:
        entries = list(education or [])
        files = [e.file for e in entries if e.file is not None]
    else:
        entries = []
    if not files:
        return None, "Please select at least one file"
    if is_education and any(not e.is_complete for e in entries):
        return None, EDUCATION_FIELDS_MESSAGE

    check_index = next((i for i, c in enumerate(checks or []) if c.get('checkType') == check_type), -1)
    payload = CasePayload()
    mapping = []
    for index, file_ref in enumerate(files):
        entry = {'checkType': check_type, 'checkIndex': check_index, 'subSectionKey': SELF_SECTION}
        if is_education and index < len(entries):
            entry.update(entries[index].to_dict())
        mapping.append(entry)
        payload.add_file('candidateDocuments', file_ref,
                         FileDescriptor(file_ref.filename, check_index, check_type, SELF_SECTION, check_type))
    payload.data['uploadMapping'] = json.dumps(mapping)
    return payload, None


class SubmissionService:
    """Service for submitting cases and candidate uploads"""

    def __init__(self, client: BackendClient = None):
        self.client = client or BackendClient()

    def create_case(self, builder: SubmissionBuilder, candidate_info: Dict,
                    client_organization: Optional[str] = None) -> Dict:
        """Create a case with admin-entered details"""
        error = builder.validate_case()
        if error:
            logger.info(f"Case creation rejected: {error}")
            return {'error': error}

        payload = builder.build_case_payload(candidate_info, client_organization)
        try:
            result = self.client.create_case(payload.data, payload.parts())
        except BackendAPIError as e:
            return backend_error(e, 'Failed to create case')

        logger.info(f"Created case with {len(builder.active_checks())} checks and {len(payload.files)} files")
        return {
            'success': True,
            'message': 'Case created successfully!',
            'case': result,
            'files': [d.to_dict() for d in payload.descriptors]
        }

    def send_link(self, builder: SubmissionBuilder, candidate_info: Dict,
                  client_organization: Optional[str] = None, checks: Optional[List[str]] = None) -> Dict:
        """Create a case and email the candidate an upload link"""
        body, error = builder.build_send_link_payload(candidate_info, client_organization, checks)
        if error:
            logger.info(f"Send link rejected: {error}")
            return {'error': error}

        try:
            result = self.client.create_and_send_link(body)
        except BackendAPIError as e:
            return backend_error(e, 'Failed to send upload link.')

        logger.info(f"Sent upload link for {len(body['checks'])} checks")
        return {
            'success': True,
            'message': result.get('msg') or 'Upload link has been sent to the candidate.',
            'case': result
        }

    def get_request_details(self, token: str) -> Dict:
        """Candidate-facing summary of an upload link"""
        try:
            details = self.client.get_request_details(token)
        except BackendAPIError as e:
            return backend_error(e, 'This upload link is invalid or has expired.')

        requested = []
        for index, raw in enumerate(details.get('requestedChecks') or []):
            name = raw.get('name') or raw.get('slug') or f"check_{index}"
            requested.append(CheckDefinition(
                slug=normalize_key(raw.get('slug') or name),
                display_name=name,
                schema=raw.get('schema') if isinstance(raw.get('schema'), dict) else None
            ))
        return {
            'success': True,
            'candidateName': details.get('candidateName'),
            'clientName': details.get('clientName'),
            'checks': requested
        }

    def submit_candidate_upload(self, token: str, builder: SubmissionBuilder, requested: List[str]) -> Dict:
        """Submit a candidate's details and documents"""
        requested = [resolve_slug(r) for r in requested]
        error = builder.validate_candidate(requested)
        if error:
            return {'error': error}

        payload = builder.build_candidate_payload(requested)
        try:
            result = self.client.submit_candidate_upload(token, payload.data, payload.parts())
        except BackendAPIError as e:
            return backend_error(e, 'Submission failed. The link may be expired or files are too large.')

        logger.info(f"Candidate submission accepted with {len(payload.files)} files")
        return {'success': True, 'message': result.get('msg') or 'Information submitted successfully.'}

    def upload_for_candidate(self, case_id: str, check_type: str, files: List[FileRef],
                             education: Optional[List[EducationEntry]] = None) -> Dict:
        """Upload documents on the candidate's behalf"""
        try:
            case = self.client.get_case(case_id)
        except BackendAPIError as e:
            return backend_error(e, 'Failed to load case')

        payload, error = build_candidate_documents_upload(case.get('checks') or [], check_type, files, education)
        if error:
            return {'error': error}

        try:
            result = self.client.upload_for_candidate(case_id, payload.data, payload.parts())
        except BackendAPIError as e:
            return backend_error(e, 'Upload failed')

        logger.info(f"Uploaded {len(payload.files)} documents for case {case_id} ({check_type})")
        return {
            'success': True,
            'message': result.get('msg') or 'Documents uploaded successfully!',
            'case': result.get('case')
        }
