import re
from typing import Dict, Iterable, Optional, Tuple


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """Validate email format"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not email or not str(email).strip():
        return False, "Email is required"
    if not re.match(pattern, str(email).strip()):
        return False, "Invalid email format"
    return True, None


def validate_send_link_email(candidate_info: Dict) -> Tuple[bool, Optional[str]]:
    """An upload link can only be sent to a candidate with an email address"""
    email = str((candidate_info or {}).get('email') or '').strip()
    if not email:
        return False, ("Candidate email is required to send an upload link. "
                       "Please enter the candidate's email.")
    return True, None


def validate_candidate_row(row: Dict) -> Tuple[bool, Optional[str]]:
    """Validate one candidate row from a bulk upload file"""
    if not str(row.get('candidateName') or '').strip():
        return False, "candidateName is required"
    valid, error = validate_email(row.get('email'))
    if not valid:
        return False, error
    return True, None


def validate_file_extension(filename: str, allowed: Iterable[str]) -> Tuple[bool, Optional[str]]:
    """Validate an uploaded file's extension against an allow list"""
    if not filename or '.' not in filename:
        return False, "File has no extension"
    extension = filename.rsplit('.', 1)[1].lower()
    if extension not in allowed:
        return False, f"Unsupported file type: .{extension}"
    return True, None
