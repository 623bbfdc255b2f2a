"""
Per-check-type behavior table.

Check types whose data does not map one-to-one onto generic schema sections
get a ``CheckBehavior`` entry here. Everything else uses ``DEFAULT_BEHAVIOR``.
The schema interpreter, submission builder, reconciler and document resolver
all look behaviors up through ``behavior_for`` instead of branching on type
names.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from casedesk.models.check import SELF_SECTION
from casedesk.utils.keys import normalize_key, compact_key, is_blank

EDUCATION = 'education_verification'
NATIONAL_ID = 'national_id_verification'
DRUG_PANEL = 'drug_panel_tests'
ADDRESS = 'address_verification'
EMPLOYMENT = 'employment_verification'

EDUCATION_FIELDS_MESSAGE = "Please fill in all education details (University, Degree, Year)"
NATIONAL_ID_MESSAGE = ("For National ID Verification, at least one ID number must be provided. "
                       "Please fill in the required details.")

# Candidate fieldKey prefixes to search when only the check type is known
UPLOAD_KEY_PREFIXES = {
    'address_verification': ['address_verification', 'address_proof'],
    'credit_history_check': ['credit_history_check', 'credit_check', 'credit_report'],
    'directorship_check': ['directorship_check'],
    'drug_panel_tests': ['drug_panel_tests'],
    'court_record_check': ['court_record_check'],
    'education_verification': ['education_verification', 'educationdocuments'],
    'employment_verification': ['employment_verification', 'employment_proof'],
    'gap_analysis': ['gap_analysis'],
    'global_database': ['global_database'],
    'national_id_verification': ['national_id_verification', 'national_id', 'national_id_proof'],
    'other_documents': ['other_documents', 'general'],
    'police_verification': ['police_verification'],
    'reference_checks': ['reference_checks'],
    'social_media_screening': ['social_media_screening'],
    'uan': ['uan', 'uan_proof'],
}


def address_section_key(declared: str) -> str:
    """Map a declared address section name onto current/permanent/preferences"""
    lowered = str(declared or '').lower()
    if 'permanent' in lowered:
        return 'permanent'
    if 'preference' in lowered:
        return 'preferences'
    return 'current'


def employment_section_key(declared: str) -> str:
    """Map a declared employment section name onto current/previous"""
    return 'current' if 'current' in str(declared or '').lower() else 'previous'


def validate_national_id(details: Dict, id_fields: List[str]) -> Optional[str]:
    """At least one ID number must be filled in"""
    values = (details or {}).get(SELF_SECTION) or {}
    if not any(not is_blank(values.get(name)) for name in id_fields):
        return NATIONAL_ID_MESSAGE
    return None


def promote_lab_test_level(params: Dict, selected: Dict = None) -> Dict:
    """Copy the drug panel level to the root of params"""
    own = params.get(SELF_SECTION) or {}
    level = own.get('labTestLevel') or own.get('selected') or (selected or {}).get('selected')
    if level:
        params = dict(params)
        params['labTestLevel'] = level
    return params


@dataclass(frozen=True)
class CheckBehavior:
    slug: str
    section_key: Callable[[str], str] = normalize_key
    repeatable: bool = False
    single_file: bool = False
    multi_section_comments: bool = False
    legacy_blob: Optional[str] = None
    root_field: Optional[str] = None
    validate: Optional[Callable[[Dict, List[str]], Optional[str]]] = None
    serialize: Optional[Callable[..., Dict]] = None


DEFAULT_BEHAVIOR = CheckBehavior(slug='')

CHECK_BEHAVIORS: Dict[str, CheckBehavior] = {
    EDUCATION: CheckBehavior(
        slug=EDUCATION,
        repeatable=True
    ),
    NATIONAL_ID: CheckBehavior(
        slug=NATIONAL_ID,
        single_file=True,
        legacy_blob='nationalId',
        validate=validate_national_id
    ),
    DRUG_PANEL: CheckBehavior(
        slug=DRUG_PANEL,
        root_field='labTestLevel',
        serialize=promote_lab_test_level
    ),
    ADDRESS: CheckBehavior(
        slug=ADDRESS,
        section_key=address_section_key,
        multi_section_comments=True,
        legacy_blob='addressVerification'
    ),
    EMPLOYMENT: CheckBehavior(
        slug=EMPLOYMENT,
        section_key=employment_section_key,
        multi_section_comments=True,
        legacy_blob='employment'
    ),
    'credit_history_check': CheckBehavior(slug='credit_history_check', legacy_blob='creditCheck'),
    'global_database': CheckBehavior(slug='global_database', legacy_blob='globalDatabase'),
    'uan': CheckBehavior(slug='uan', legacy_blob='uan'),
}

MULTI_SECTION_CHECKS: Tuple[str, ...] = tuple(
    slug for slug, behavior in CHECK_BEHAVIORS.items() if behavior.multi_section_comments
)

_COMPACT_INDEX = {compact_key(slug): slug for slug in CHECK_BEHAVIORS}


def resolve_slug(check_type: str) -> str:
    """Resolve a loosely written check type (display name, slug, spacing) to a known slug"""
    slug = normalize_key(check_type)
    if slug in CHECK_BEHAVIORS:
        return slug
    return _COMPACT_INDEX.get(compact_key(check_type), slug)


def behavior_for(check_type: str) -> CheckBehavior:
    return CHECK_BEHAVIORS.get(resolve_slug(check_type), DEFAULT_BEHAVIOR)


def is_multi_section(check_type: str) -> bool:
    return behavior_for(check_type).multi_section_comments


def upload_prefixes_for(check_type: str) -> List[str]:
    """fieldKey prefixes to search for a check type, most specific first"""
    slug = resolve_slug(check_type)
    wanted = compact_key(slug)
    if not wanted:
        return []
    for known, prefixes in UPLOAD_KEY_PREFIXES.items():
        candidate = compact_key(known)
        if candidate == wanted or candidate in wanted or wanted in candidate:
            return list(prefixes)
    return [slug]
