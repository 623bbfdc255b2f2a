"""
Recovers which uploaded documents belong to which check section.

Uploads link to documents through a loosely formatted ``fieldKey`` string
(``employment_verification__current``, ``verified_uan``, ...), so matching is
heuristic: exact key, then prefix, then substring, first non-empty tier wins.
"""
import json
from typing import Dict, Iterable, List, Optional
from config.config import Config
from casedesk.models.document import Document, Upload, document_id
from casedesk.services.check_types import upload_prefixes_for
from casedesk.utils.keys import normalize_key, compact_key


def doc_identity(doc) -> str:
    """Identity used for dedup: id, else filename or url, else the JSON form"""
    raw = doc.raw if isinstance(doc, Document) else doc
    if isinstance(doc, Document) and doc.id:
        return doc.id
    if isinstance(raw, dict):
        if raw.get('_id') or raw.get('id'):
            return str(raw.get('_id') or raw.get('id'))
        for key in ('originalFilename', 'filename', 'storageUrl', 'url'):
            if raw.get(key):
                return str(raw[key])
    return json.dumps(raw, sort_keys=True, default=str)


def uniq_docs(docs: Iterable) -> List:
    """Drop repeated documents, keeping first occurrences in order"""
    seen = set()
    result = []
    for doc in docs or []:
        if not doc:
            continue
        key = doc_identity(doc)
        if key in seen:
            continue
        seen.add(key)
        result.append(doc)
    return result


def normalize_uploads(raw_uploads: List[Dict], documents: List[Document]) -> List[Upload]:
    """Resolve each upload's documentId and drop repeated fieldKey/document pairs"""
    by_id = {d.id: d for d in documents if d.id}
    uploads = []
    seen = set()
    for raw in raw_uploads or []:
        if not isinstance(raw, dict):
            continue
        ref = raw.get('documentId')
        if isinstance(ref, dict) and document_id(ref):
            document = Document.from_dict(ref)
        else:
            document = by_id.get(document_id(ref)) if ref is not None else None

        field_key = str(raw.get('fieldKey') or '')
        original_id = document_id(ref)
        candidates = [document.id if document else None, original_id,
                      document.original_filename if document else None]
        identity = next((c for c in candidates if c), None) or json.dumps(raw, sort_keys=True, default=str)
        compound = f"{field_key}::{identity}"
        if compound in seen:
            continue
        seen.add(compound)
        uploads.append(Upload(field_key=field_key, document=document, original_document_id=original_id))
    return uploads


def is_verified_document(document: Document) -> bool:
    return document.original_filename.startswith(Config.VERIFIED_FILENAME_PREFIX)


def is_verified_upload(upload: Upload) -> bool:
    return upload.field_key.lower().startswith(Config.VERIFIED_FIELD_KEY_PREFIX)


class DocumentResolver:
    """Document lookups over one fetched case"""

    def __init__(self, case: Dict):
        case = case or {}
        self.documents = [Document.from_dict(d) for d in case.get('documents') or [] if isinstance(d, dict)]
        self.uploads = normalize_uploads(case.get('uploads') or [], self.documents)
        self._verified_ids = {
            doc_identity(u.document) for u in self.uploads if u.document is not None and is_verified_upload(u)
        }

    def _is_verified(self, document: Document) -> bool:
        return is_verified_document(document) or doc_identity(document) in self._verified_ids

    def get_uploads_for_field(self, field_key: str) -> List[Document]:
        """Documents whose upload fieldKey matches exactly, else by prefix, else by substring"""
        if not field_key:
            return []
        wanted = str(field_key).lower()
        keyed = [(u.field_key.lower(), u.document) for u in self.uploads if u.document is not None]

        for matches in (lambda k: k == wanted, lambda k: k.startswith(wanted), lambda k: wanted in k):
            found = [doc for key, doc in keyed if matches(key)]
            if found:
                return uniq_docs(found)
        return []

    def submitted_documents_for(self, check_type: str) -> List[Document]:
        """Candidate-submitted documents for a check, excluding admin-verified files"""
        mapped = []
        for prefix in upload_prefixes_for(check_type):
            mapped.extend(self.get_uploads_for_field(prefix))

        slug = normalize_key(check_type)
        by_type = [d for d in self.documents if normalize_key(d.check_type) == slug]

        return [d for d in uniq_docs(mapped + by_type) if not self._is_verified(d)]

    def documents_for_section(self, check_type: str, section_key: str) -> List[Document]:
        """Candidate documents for one section, falling back to the whole check"""
        slug = normalize_key(check_type)
        field_key = f"{slug}__{normalize_key(section_key)}"
        docs = [d for d in self.get_uploads_for_field(field_key) if not self._is_verified(d)]
        return docs or self.submitted_documents_for(check_type)

    def verified_documents_for(self, check_type: str, section_key: Optional[str] = None) -> List[Document]:
        """Admin-verified documents attached to a check"""
        wanted = compact_key(check_type)
        found = []
        for upload in self.uploads:
            if upload.document is None or not is_verified_upload(upload):
                continue
            rest = upload.field_key[len(Config.VERIFIED_FIELD_KEY_PREFIX):]
            rest_key = compact_key(rest)
            if not wanted or not rest_key or not (wanted in rest_key or rest_key in wanted):
                continue
            if section_key and '__' in rest and normalize_key(rest.split('__')[-1]) != normalize_key(section_key):
                continue
            found.append(upload.document)
        return uniq_docs(found)
