from .check import CheckStatus, FieldType, FieldSpec, CheckDefinition, Section
from .document import Document, Upload
from .submission import FileRef, FileDescriptor, EducationEntry
from .review_draft import ReviewDraft, DraftState, DraftEvent

__all__ = [
    'CheckStatus', 'FieldType', 'FieldSpec', 'CheckDefinition', 'Section',
    'Document', 'Upload',
    'FileRef', 'FileDescriptor', 'EducationEntry',
    'ReviewDraft', 'DraftState', 'DraftEvent'
]
