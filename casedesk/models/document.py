from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def document_id(raw: Any) -> Optional[str]:
    """Return the backend id of a document-ish value, if it carries one"""
    if isinstance(raw, dict):
        value = raw.get('_id') or raw.get('id')
        return str(value) if value else None
    if isinstance(raw, (str, int)) and raw != '':
        return str(raw)
    return None


@dataclass
class Document:
    """Metadata for an uploaded file, as returned by the backend"""
    id: Optional[str]
    original_filename: str = ''
    storage_url: str = ''
    check_type: str = ''
    raw: Dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict) -> 'Document':
        return cls(
            id=document_id(raw),
            original_filename=raw.get('originalFilename') or raw.get('filename') or '',
            storage_url=raw.get('storageUrl') or raw.get('url') or '',
            check_type=raw.get('checkType') or '',
            raw=raw
        )

    def to_dict(self) -> Dict:
        data = dict(self.raw)
        data.setdefault('_id', self.id)
        data.setdefault('originalFilename', self.original_filename)
        data.setdefault('storageUrl', self.storage_url)
        return data


@dataclass
class Upload:
    """Links a document to a check section through a loosely formatted fieldKey"""
    field_key: str
    document: Optional[Document]
    original_document_id: Optional[str] = None
