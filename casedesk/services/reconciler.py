"""
Merges a freshly fetched check list with what the admin already has on screen.

The backend does not promise a stable order, a stable display name, or a full
echo of the check list after a save, so checks are matched by an identity key
instead of by position.
"""
import copy
import json
from typing import Any, Dict, List, Optional, Tuple
from casedesk.models.check import SELF_SECTION
from casedesk.services.check_types import is_multi_section
from casedesk.utils.keys import normalize_key, humanize_key

DEFAULT_COMMENT_KEY = '_default'
VERIFIED_FIELDS = ('detail1', 'detail2', 'detail3')
# Sub-sections of multi-section checks that are never reviewed on their own
UNREVIEWED_SECTIONS = (SELF_SECTION, 'preferences')


def identity_key(check: Dict) -> str:
    raw = (check.get('_displayName') or check.get('displayName')
           or check.get('checkType') or check.get('_normalized') or '')
    return normalize_key(raw)


def keyed_checks(checks: List[Dict], fallback_prefix: str = 'check') -> List[Tuple[str, Dict]]:
    """Pair each check with a unique key; repeated identities get an occurrence suffix"""
    counts = {}
    keyed = []
    for index, check in enumerate(checks or []):
        base = identity_key(check) or f"__{fallback_prefix}_{index}"
        counts[base] = counts.get(base, 0) + 1
        key = base if counts[base] == 1 else f"{base}#{counts[base]}"
        keyed.append((key, check))
    return keyed


def display_name_for(check: Dict) -> str:
    return (check.get('_displayName') or check.get('displayName')
            or humanize_key(check.get('checkType')))


def annotate(check: Dict) -> Dict:
    """Copy of a check carrying the display name and normalized type used for matching"""
    annotated = dict(check)
    annotated['_displayName'] = display_name_for(check)
    annotated['_normalized'] = normalize_key(check.get('checkType') or check.get('_normalized')
                                             or annotated['_displayName'])
    return annotated


def merge_checks(previous: List[Dict], server: List[Dict]) -> List[Dict]:
    """
    Merge server checks into the previously shown list.

    Previously shown checks keep their order and display names; checks the
    server did not echo are kept as they were; server-only checks are appended
    in server order.
    """
    prev_keyed = keyed_checks(previous, 'prev')
    merged = {key: check for key, check in prev_keyed}
    matched = set()
    appended = []

    for server_key, incoming in keyed_checks(server, 'srv'):
        target = server_key if server_key in merged and server_key not in matched else None
        if target is None:
            wanted = normalize_key(incoming.get('checkType') or '')
            target = next((key for key, check in prev_keyed
                           if key not in matched and wanted and check.get('_normalized') == wanted), None)

        prev = merged.get(target, {}) if target else {}
        display = (prev.get('_displayName') or incoming.get('_displayName')
                   or incoming.get('displayName') or humanize_key(incoming.get('checkType')))
        combined = {**prev, **incoming, '_displayName': display}
        combined['_normalized'] = normalize_key(incoming.get('checkType') or incoming.get('_normalized')
                                                or display)

        if target:
            merged[target] = combined
            matched.add(target)
        else:
            appended.append(combined)

    return [merged[key] for key, _ in prev_keyed] + appended


def find_saved_check(previous_check: Dict, server: List[Dict], allow_single: bool = True) -> Optional[Dict]:
    """The server's copy of a check just saved, by identity, else the only returned check"""
    wanted = identity_key(previous_check)
    if wanted:
        for check in server or []:
            if identity_key(check) == wanted:
                return check
        normalized = previous_check.get('_normalized')
        for check in server or []:
            if normalized and normalize_key(check.get('checkType') or '') == normalized:
                return check
    if allow_single and server and len(server) == 1:
        return server[0]
    return None


def expand_comments(comments: Any, check_type: str = '') -> Dict[str, str]:
    """Working form of stored comments, always keyed by section"""
    if isinstance(comments, dict):
        return {str(k): '' if v is None else str(v) for k, v in comments.items()}
    if comments is None or comments == '':
        return {}
    return {DEFAULT_COMMENT_KEY: str(comments)}


def flatten_comments(comments: Any, check_type: str):
    """Stored form: multi-section checks keep the object, others collapse to one string"""
    if is_multi_section(check_type):
        if isinstance(comments, dict):
            return dict(comments)
        return {DEFAULT_COMMENT_KEY: comments} if comments else {}
    if isinstance(comments, str):
        return comments
    if isinstance(comments, dict):
        return comments.get(DEFAULT_COMMENT_KEY) or comments.get('value') or ''
    return ''


def parse_verified_data(value: Any) -> Dict:
    if isinstance(value, dict):
        return copy.deepcopy(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return {'value': value}
        return parsed if isinstance(parsed, dict) else {'value': value}
    return {}


def review_sections(check: Dict) -> List[str]:
    """Sub-section keys the admin fills in for a check"""
    params = check.get('params')
    if is_multi_section(check.get('checkType') or '') and isinstance(params, dict):
        keys = [k for k, v in params.items() if isinstance(v, dict) and k not in UNREVIEWED_SECTIONS]
        if keys:
            return keys
    return [DEFAULT_COMMENT_KEY]
