from .logger import setup_logger, get_logger
from .keys import normalize_key, compact_key, humanize_key, has_any_value
from .security import verify_token, user_id_from_claims
from .validators import validate_email, validate_send_link_email, validate_candidate_row, validate_file_extension

__all__ = [
    'setup_logger', 'get_logger',
    'normalize_key', 'compact_key', 'humanize_key', 'has_any_value',
    'verify_token',
    'user_id_from_claims',
    'validate_email', 'validate_send_link_email', 'validate_candidate_row',
    'validate_file_extension'
]
