import re
from typing import Any, Mapping


def normalize_key(value: Any) -> str:
    """Lower-case, collapse whitespace to underscores, drop non-word characters"""
    text = str(value if value is not None else '').lower()
    text = re.sub(r'\s+', '_', text)
    return re.sub(r'[^\w]', '', text, flags=re.ASCII)


def compact_key(value: Any) -> str:
    """Lower-case alphanumerics only, for loose check-type comparisons"""
    return re.sub(r'[^a-z0-9]', '', str(value if value is not None else '').lower())


def humanize_key(value: Any) -> str:
    """Turn a slug or camelCase key into a title-cased label"""
    if not value:
        return 'Untitled Check'
    text = re.sub(r'[_\-]+', ' ', str(value))
    text = re.sub(r'([a-z])([A-Z])', r'\1 \2', text)
    words = re.sub(r'\s+', ' ', text).strip().split(' ')
    return ' '.join(w[:1].upper() + w[1:] for w in words if w)


def has_any_value(obj: Any) -> bool:
    """True if a mapping holds at least one non-blank scalar value"""
    if not isinstance(obj, Mapping):
        return False
    for value in obj.values():
        if value is None or isinstance(value, (dict, list)):
            continue
        if str(value).strip() != '':
            return True
    return False


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ''
