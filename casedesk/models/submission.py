from dataclasses import dataclass
from typing import IO, Dict, Optional, Tuple


@dataclass(frozen=True)
class FileRef:
    """A file selected for upload but not yet sent to the backend"""
    filename: str
    stream: Optional[IO] = None
    content_type: str = 'application/octet-stream'
    size: int = 0

    @classmethod
    def from_storage(cls, storage) -> 'FileRef':
        """Wrap a werkzeug FileStorage from a multipart request"""
        size = storage.content_length or 0
        if not size:
            try:
                position = storage.stream.tell()
                storage.stream.seek(0, 2)
                size = storage.stream.tell()
                storage.stream.seek(position)
            except (AttributeError, OSError):
                size = 0
        return cls(
            filename=storage.filename or 'upload',
            stream=storage.stream,
            content_type=storage.mimetype or 'application/octet-stream',
            size=size
        )

    @property
    def dedupe_key(self) -> str:
        return f"{self.filename}::{self.size}"

    def as_part(self) -> Tuple[str, Optional[IO], str]:
        """Tuple form accepted by requests' ``files`` argument"""
        return (self.filename, self.stream, self.content_type)


@dataclass(frozen=True)
class FileDescriptor:
    """Describes where file ``i`` of a multipart submission belongs"""
    filename: str
    check_index: Optional[int]
    check_type: str
    sub_section_key: str
    field_key: str = ''

    def to_dict(self) -> Dict:
        return {
            'filename': self.filename,
            'checkIndex': self.check_index,
            'checkType': self.check_type,
            'subSectionKey': self.sub_section_key
        }


@dataclass(frozen=True)
class EducationEntry:
    university: str = ''
    degree: str = ''
    year: str = ''
    file: Optional[FileRef] = None

    REQUIRED = ('university', 'degree', 'year')

    @property
    def has_values(self) -> bool:
        return any(str(getattr(self, name) or '').strip() for name in self.REQUIRED)

    @property
    def is_touched(self) -> bool:
        return self.has_values or self.file is not None

    @property
    def is_complete(self) -> bool:
        return all(str(getattr(self, name) or '').strip() for name in self.REQUIRED)

    def to_dict(self) -> Dict:
        return {'university': self.university, 'degree': self.degree, 'year': self.year}
