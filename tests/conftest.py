import io
import os

# Point the draft store, logs and token key at test values before config is imported
os.environ.setdefault('DATABASE_URL', 'sqlite:///test_casedesk.db')
os.environ.setdefault('LOG_FILE', 'logs/test_casedesk.log')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')

import pytest
from unittest.mock import Mock
from casedesk.database import init_db, drop_db
from casedesk.integrations import BackendClient
from casedesk.models import FileRef


@pytest.fixture
def db():
    """Fresh draft store for each test"""
    init_db()
    yield
    drop_db()


@pytest.fixture
def client():
    """Backend client double"""
    return Mock(spec=BackendClient)


def make_file(name='doc.pdf', content=b'%PDF-1.4 test', content_type='application/pdf'):
    return FileRef(filename=name, stream=io.BytesIO(content), content_type=content_type, size=len(content))


@pytest.fixture
def file_factory():
    """Build in-memory FileRefs"""
    return make_file
