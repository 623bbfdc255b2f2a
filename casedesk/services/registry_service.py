from collections import OrderedDict
from typing import Dict, List, Optional
from config.check_schemas import CHECK_FORM_SCHEMA
from casedesk.integrations import BackendClient, BackendAPIError
from casedesk.models.check import CheckDefinition
from casedesk.utils.keys import normalize_key
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)

LOAD_ERROR = 'Failed to load checks. Try refreshing.'

_LOCAL_SCHEMAS = {normalize_key(name): schema for name, schema in CHECK_FORM_SCHEMA.items()}


def _raw_schema(raw: Dict) -> Optional[Dict]:
    for key in ('schema', '_schema', 'formSchema'):
        value = raw.get(key)
        if isinstance(value, dict):
            return value
    return None


def normalize_entry(raw: Dict, index: int) -> CheckDefinition:
    """Turn one raw catalog entry into a CheckDefinition"""
    guess_name = raw.get('name') or raw.get('label') or raw.get('displayName') or ''
    slug = raw.get('slug') or raw.get('key') or guess_name or f"check_{index}"
    slug = normalize_key(slug)
    return CheckDefinition(
        slug=slug,
        display_name=str(guess_name or slug.replace('_', ' ')).strip(),
        category=raw.get('category') or raw.get('group') or 'Other',
        description=raw.get('description') or raw.get('desc') or '',
        schema=_raw_schema(raw)
    )


def dedupe_checks(entries: List[CheckDefinition]) -> List[CheckDefinition]:
    """Collapse entries sharing a normalized display name, preferring the one with a schema"""
    by_name = OrderedDict()
    for entry in entries:
        name_key = normalize_key(entry.display_name or entry.slug)
        existing = by_name.get(name_key)
        if existing is None:
            by_name[name_key] = entry
            continue

        if existing.schema is None and entry.schema is not None:
            if entry.category == 'Other' and existing.category:
                entry.category = existing.category
            entry.description = entry.description or existing.description
            by_name[name_key] = entry
        else:
            if existing.category == 'Other' and entry.category:
                existing.category = entry.category
            existing.description = existing.description or entry.description

    result = list(by_name.values())
    for entry in result:
        entry.slug = normalize_key(entry.slug or entry.display_name)
    return result


def local_schema_for(definition: CheckDefinition) -> Optional[Dict]:
    return _LOCAL_SCHEMAS.get(normalize_key(definition.display_name)) or _LOCAL_SCHEMAS.get(definition.slug)


def normalize_catalog(raw_entries) -> List[CheckDefinition]:
    """Canonical, deduplicated check definitions from a raw catalog response"""
    if not isinstance(raw_entries, list):
        return []

    entries = [normalize_entry(raw, index) for index, raw in enumerate(raw_entries) if isinstance(raw, dict)]
    checks = dedupe_checks(entries)

    for check in checks:
        if check.schema is None:
            check.schema = local_schema_for(check)
    return checks


def find_check(checks: List[CheckDefinition], key: str) -> Optional[CheckDefinition]:
    """Resolve a slug or display name against a loaded catalog"""
    wanted = normalize_key(key)
    if not wanted:
        return None
    for check in checks:
        if check.slug == wanted or normalize_key(check.display_name) == wanted:
            return check
    return None


def group_by_category(checks: List[CheckDefinition]) -> Dict[str, List[CheckDefinition]]:
    """Group checks for the selection UI, keeping first-seen category order"""
    groups = OrderedDict()
    for check in checks:
        groups.setdefault(check.category or 'Other', []).append(check)
    return groups


class RegistryService:
    """Service for loading the check catalog"""

    def __init__(self, client: BackendClient = None):
        self.client = client or BackendClient()

    def load(self) -> Dict:
        """Fetch and normalize the check catalog"""
        try:
            raw_entries = self.client.get_checks()
        except BackendAPIError as e:
            logger.error(f"Error loading check catalog: {e.message}")
            return {'error': LOAD_ERROR, 'checks': []}
        except Exception as e:
            logger.error(f"Unexpected error loading check catalog: {str(e)}")
            return {'error': LOAD_ERROR, 'checks': []}

        checks = normalize_catalog(raw_entries)
        logger.info(f"Loaded {len(checks)} checks from {len(raw_entries)} catalog entries")
        return {'success': True, 'checks': checks}

    def load_clients(self) -> Dict:
        """Fetch client organizations for the case form"""
        try:
            return {'success': True, 'clients': self.client.get_clients()}
        except BackendAPIError as e:
            logger.error(f"Error loading clients: {e.message}")
            return {'error': 'Failed to load clients. Try refreshing.', 'clients': []}

    def find(self, checks: List[CheckDefinition], key: str) -> Optional[CheckDefinition]:
        return find_check(checks, key)
