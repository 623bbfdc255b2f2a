import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from casedesk.utils.keys import humanize_key

META_KEYS = ('_meta', 'meta')
SELF_SECTION = '_self'


class CheckStatus(enum.Enum):
    PENDING = "Pending"
    CLEAR = "Clear"
    DISCREPANT = "Discrepant"
    AMBER = "Amber"
    INSUFFICIENCY = "Insufficiency"
    ON_HOLD = "On Hold"

    @classmethod
    def values(cls) -> List[str]:
        return [status.value for status in cls]


class FieldType(enum.Enum):
    TEXT = "text"
    DATE = "date"
    RADIO = "radio"
    FILE = "file"

    @classmethod
    def parse(cls, raw: Optional[str], name: str = '') -> 'FieldType':
        """Read a schema field type; missing or unknown types are text"""
        value = str(raw or '').lower()
        if not value and name.startswith('_file'):
            return cls.FILE
        if value == 'string':
            return cls.TEXT
        try:
            return cls(value)
        except ValueError:
            return cls.TEXT


@dataclass(frozen=True)
class FieldSpec:
    name: str
    label: str
    type: FieldType = FieldType.TEXT
    options: tuple = ()

    @classmethod
    def from_dict(cls, raw: Dict) -> 'FieldSpec':
        name = str(raw.get('name') or '')
        field_type = FieldType.parse(raw.get('type'), name)
        options = tuple(str(o) for o in raw.get('options') or ()) if field_type == FieldType.RADIO else ()
        return cls(
            name=name,
            label=raw.get('label') or humanize_key(name),
            type=field_type,
            options=options
        )

    @property
    def is_file(self) -> bool:
        return self.type == FieldType.FILE

    def to_dict(self) -> Dict:
        data = {'name': self.name, 'label': self.label, 'type': self.type.value}
        if self.options:
            data['options'] = list(self.options)
        return data


@dataclass
class CheckDefinition:
    """One verification check type offered by the catalog"""
    slug: str
    display_name: str
    category: str = 'Other'
    description: str = ''
    schema: Optional[Dict[str, Any]] = None

    @property
    def meta(self) -> Dict:
        if not isinstance(self.schema, dict):
            return {}
        for key in META_KEYS:
            if isinstance(self.schema.get(key), dict):
                return self.schema[key]
        return {}

    @property
    def only_upload(self) -> bool:
        return bool(self.meta.get('onlyUpload'))

    def fields_for(self, section_key: str) -> List[FieldSpec]:
        if not isinstance(self.schema, dict):
            return []
        raw_fields = self.schema.get(section_key)
        if not isinstance(raw_fields, list):
            return []
        return [FieldSpec.from_dict(f) for f in raw_fields if isinstance(f, dict) and f.get('name')]

    def to_dict(self) -> Dict:
        return {
            'slug': self.slug,
            'name': self.display_name,
            'category': self.category,
            'description': self.description,
            'hasSchema': self.schema is not None,
            'onlyUpload': self.only_upload
        }


@dataclass
class Section:
    """A group of fields rendered and stored together for one check"""
    key: str
    label: str
    fields: List[FieldSpec] = field(default_factory=list)
    repeatable: bool = False

    @property
    def file_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.is_file]

    @property
    def value_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if not f.is_file]

    def to_dict(self) -> Dict:
        return {
            'key': self.key,
            'label': self.label,
            'repeatable': self.repeatable,
            'fields': [f.to_dict() for f in self.fields]
        }
