import json
from typing import Any, Dict, List, Optional
from casedesk.models.check import CheckDefinition, FieldSpec, FieldType, Section, META_KEYS, SELF_SECTION
from casedesk.services.check_types import behavior_for, resolve_slug, EDUCATION, ADDRESS, EMPLOYMENT
from casedesk.utils.keys import humanize_key, is_blank
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)

EDUCATION_FIELDS = [
    FieldSpec('university', 'University'),
    FieldSpec('degree', 'Degree'),
    FieldSpec('year', 'Year of Passing'),
    FieldSpec('_file', 'Upload Certificate / Transcript', FieldType.FILE),
]
NATIONAL_ID_FILE = FieldSpec('_file', 'Upload ID Document (Aadhaar/PAN/Any)', FieldType.FILE)
LAB_TEST_LEVEL = FieldSpec('labTestLevel', 'Panel', FieldType.RADIO, tuple(str(n) for n in range(5, 13)))

# Keys never shown in the generic stated-details view
HIDDEN_PARAM_KEYS = ('_file', 'documents', 'current', 'permanent', 'list', 'providedBy', 'providedAt')
ADDRESS_LINE_FIELDS = ('line1', 'line2', 'city', 'state', 'pincode', 'country')
EMPLOYMENT_FIELDS = ('organization', 'designation', 'tenure')


def _single_file(fields: List[FieldSpec]) -> List[FieldSpec]:
    """Keep every value field but only the first file field"""
    kept, seen_file = [], False
    for spec in fields:
        if spec.is_file:
            if seen_file:
                continue
            seen_file = True
        kept.append(spec)
    return kept


def infer_section(data: Any) -> Section:
    """Build a generic _self section from flat key/value pairs already present in data"""
    fields = []
    if isinstance(data, dict):
        source = data.get(SELF_SECTION) if isinstance(data.get(SELF_SECTION), dict) else data
        for name, value in source.items():
            if str(name).startswith('_') or isinstance(value, (dict, list)):
                continue
            fields.append(FieldSpec(str(name), humanize_key(name)))
    return Section(SELF_SECTION, '', fields)


def _only_upload_section(definition: CheckDefinition) -> Section:
    fields = definition.fields_for(SELF_SECTION)
    text = next((f for f in fields if f.type == FieldType.TEXT), None)
    upload = next((f for f in fields if f.is_file), None)
    label = definition.meta.get('uploadLabel') or ''
    return Section(SELF_SECTION, label, [f for f in (text, upload) if f is not None])


def _education_section(definition: CheckDefinition) -> Section:
    declared = {f.name: f for f in definition.fields_for(SELF_SECTION)}
    fields = [declared.get(f.name, f) for f in EDUCATION_FIELDS]
    return Section(SELF_SECTION, 'Education Details', fields, repeatable=True)


def interpret(definition: CheckDefinition, data: Optional[Dict] = None) -> List[Section]:
    """Ordered sections to render for a check, named sections first and _self last"""
    slug = resolve_slug(definition.slug or definition.display_name)
    behavior = behavior_for(slug)
    schema = definition.schema if isinstance(definition.schema, dict) else None

    if behavior.repeatable:
        return [_education_section(definition)]

    if schema is None:
        return [infer_section(data)]

    if definition.only_upload:
        return [_only_upload_section(definition)]

    sections = []
    seen = set()
    for name, raw_fields in schema.items():
        if name in META_KEYS or name == SELF_SECTION or not isinstance(raw_fields, list):
            continue
        key = behavior.section_key(name)
        if key in seen:
            logger.warning(f"Check {slug} declares section {name!r} twice as {key!r}; keeping the first")
            continue
        seen.add(key)
        sections.append(Section(key, name, _single_file(definition.fields_for(name))))

    if isinstance(schema.get(SELF_SECTION), list):
        sections.append(Section(SELF_SECTION, '', _single_file(definition.fields_for(SELF_SECTION))))

    if behavior.single_file:
        sections = _shared_file_sections(sections)
    if behavior.root_field == LAB_TEST_LEVEL.name:
        sections = _lab_test_sections(sections)

    if not sections:
        return [infer_section(data)]
    return sections


def _shared_file_sections(sections: List[Section]) -> List[Section]:
    """All ID numbers share one upload slot on the _self section"""
    shared = None
    for section in sections:
        for spec in section.file_fields:
            shared = shared or spec
        section.fields = section.value_fields

    target = next((s for s in sections if s.key == SELF_SECTION), None)
    if target is None:
        target = Section(SELF_SECTION, '')
        sections.append(target)
    target.fields.append(shared or NATIONAL_ID_FILE)
    return sections


def _lab_test_sections(sections: List[Section]) -> List[Section]:
    target = next((s for s in sections if s.key == SELF_SECTION), None)
    if target is None:
        target = Section(SELF_SECTION, '')
        sections.append(target)
    if not any(f.name == LAB_TEST_LEVEL.name for f in target.fields):
        target.fields.append(LAB_TEST_LEVEL)
    return sections


def id_fields_for(definition: CheckDefinition) -> List[str]:
    """Names of the ID-number fields of a national ID check"""
    names = []
    for section in interpret(definition):
        names.extend(f.name for f in section.value_fields)
    return names


# -------------------- Stated details --------------------

def _row(label: str, value: Any) -> Dict:
    return {'label': label, 'value': value if not is_blank(value) else 'Not provided'}


def _education_block(params: Dict) -> List[Dict]:
    entries = params.get('list')
    if not isinstance(entries, list):
        entries = params.get(SELF_SECTION) if isinstance(params.get(SELF_SECTION), list) else []
    blocks = []
    for index, entry in enumerate(e for e in entries if isinstance(e, dict)):
        blocks.append({
            'title': f"Entry #{index + 1}",
            'candidateProvided': entry.get('providedBy') == 'candidate',
            'providedAt': entry.get('providedAt'),
            'rows': [
                _row('University/Institution', entry.get('university')),
                _row('Degree/Qualification', entry.get('degree')),
                _row('Year of Passing', entry.get('year')),
            ]
        })
    return blocks


def format_address(address: Dict) -> str:
    return ', '.join(str(address[k]) for k in ADDRESS_LINE_FIELDS if not is_blank(address.get(k)))


def _address_blocks(params: Dict) -> List[Dict]:
    current = params.get('current') or {}
    permanent = params.get('permanent') or {}
    current_block = {'title': 'Current Address', 'rows': [_row('Address', format_address(current))]}
    if current.get('from') or current.get('to'):
        current_block['rows'].append(
            _row('Period', f"{current.get('from') or 'N/A'} to {current.get('to') or 'Present'}"))
    blocks = [current_block, {'title': 'Permanent Address', 'rows': [_row('Address', format_address(permanent))]}]

    mode = params.get('verificationMode') or (params.get('preferences') or {}).get('mode')
    if mode:
        blocks.append({'title': 'Verification Mode', 'rows': [_row('Mode', mode)]})
    return blocks


def _employment_blocks(params: Dict) -> List[Dict]:
    blocks = []
    for key, title in (('current', 'Current Employment'), ('previous', 'Previous Employment')):
        section = params.get(key) or {}
        if key == 'previous' and not (section.get('organization') or section.get('designation')):
            continue
        blocks.append({'title': title, 'rows': [_row(humanize_key(f), section.get(f)) for f in EMPLOYMENT_FIELDS]})
    return blocks


def _generic_blocks(params: Dict) -> List[Dict]:
    rows = []
    own = params.get(SELF_SECTION)
    if isinstance(own, dict):
        params = {**{k: v for k, v in params.items() if k != SELF_SECTION}, **own}
    for key, value in params.items():
        if key in HIDDEN_PARAM_KEYS or value is None or value == '':
            continue
        display = json.dumps(value, indent=2) if isinstance(value, (dict, list)) else str(value)
        rows.append({'label': humanize_key(key), 'value': display})
    return [{'title': 'Check Details', 'rows': rows}] if rows else []


def _decoded(value: Any) -> Any:
    """Blobs arrive either as JSON text or already decoded"""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def legacy_params(check: Dict, case: Optional[Dict]) -> Dict:
    """Details older cases keep in per-check blobs on the case instead of ``params``"""
    if not isinstance(case, dict):
        return {}
    source = case.get('checkData') if isinstance(case.get('checkData'), dict) else case
    slug = resolve_slug(check.get('checkType') or '')

    if slug == EDUCATION:
        entries = _decoded(source.get('educationDetails') or source.get('education'))
        return {'list': entries} if isinstance(entries, list) else {}

    blob_name = behavior_for(slug).legacy_blob
    blob = _decoded(source.get(blob_name)) if blob_name else None
    return blob if isinstance(blob, dict) else {}


def describe_params(check: Dict, case: Optional[Dict] = None) -> List[Dict]:
    """Render a check's submitted params into titled display blocks"""
    params = check.get('params') if isinstance(check.get('params'), dict) else {}
    if not params:
        params = legacy_params(check, case)
    slug = resolve_slug(check.get('checkType') or '')

    if slug == EDUCATION:
        return _education_block(params)
    if slug == ADDRESS:
        return _address_blocks(params)
    if slug == EMPLOYMENT:
        return _employment_blocks(params)
    return _generic_blocks(params)


class SchemaService:
    """Service exposing interpreted check forms"""

    def describe(self, definition: CheckDefinition, data: Optional[Dict] = None) -> Dict:
        """Catalog entry plus its rendered sections"""
        try:
            payload = definition.to_dict()
            payload['sections'] = [s.to_dict() for s in interpret(definition, data)]
            return payload
        except Exception as e:
            logger.error(f"Error interpreting schema for {definition.slug}: {str(e)}")
            payload = definition.to_dict()
            payload['sections'] = [infer_section(data).to_dict()]
            return payload

    def describe_all(self, definitions: List[CheckDefinition]) -> List[Dict]:
        return [self.describe(d) for d in definitions]
