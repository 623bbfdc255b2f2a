import pytest
from casedesk.models import Document
from casedesk.services.document_service import DocumentResolver, uniq_docs, normalize_uploads


def doc(doc_id, filename, check_type=''):
    return {'_id': doc_id, 'originalFilename': filename, 'storageUrl': f'https://files/{doc_id}', 'checkType': check_type}


@pytest.fixture
def case():
    """Case with candidate uploads, a verified upload and a repeated upload"""
    documents = [
        doc('d1', 'current_address.pdf'),
        doc('d2', 'permanent_address.pdf'),
        doc('d3', 'payslip.pdf'),
        doc('d4', '[VERIFIED] address_report.pdf'),
        doc('d5', 'uan_card.pdf'),
        doc('d6', 'misc.pdf', check_type='Gap Analysis'),
        doc('d7', 'uan_verified.pdf')
    ]
    uploads = [
        {'fieldKey': 'address_verification__current', 'documentId': 'd1'},
        {'fieldKey': 'address_verification__permanent', 'documentId': 'd2'},
        {'fieldKey': 'address_verification__permanent', 'documentId': 'd2'},
        {'fieldKey': 'employment_proof', 'documentId': {'_id': 'd3', 'originalFilename': 'payslip.pdf'}},
        {'fieldKey': 'address_verification__current', 'documentId': 'd4'},
        {'fieldKey': 'uan', 'documentId': 'd5'},
        {'fieldKey': 'verified_uan', 'documentId': 'd7'}
    ]
    return {'documents': documents, 'uploads': uploads}


class TestUniqDocs:
    """Test document deduplication"""

    def test_idempotent(self):
        """Test deduplicating twice equals deduplicating once"""
        docs = [doc('a', 'x.pdf'), {'originalFilename': 'y.pdf'}, doc('a', 'x-copy.pdf'),
                {'originalFilename': 'y.pdf'}, None, {'url': 'https://z'}]
        once = uniq_docs(docs)
        assert uniq_docs(once) == once
        assert len(once) == 3

    def test_keeps_first_occurrence(self):
        """Test the first copy of a document is kept"""
        first = Document.from_dict(doc('a', 'x.pdf'))
        again = Document.from_dict(doc('a', 'renamed.pdf'))
        assert uniq_docs([first, again]) == [first]


class TestNormalizeUploads:
    """Test upload normalization"""

    def test_repeated_pairs_dropped(self, case):
        """Test the same fieldKey/document pair appears once"""
        documents = [Document.from_dict(d) for d in case['documents']]
        uploads = normalize_uploads(case['uploads'], documents)
        assert len(uploads) == 6

    def test_inline_document(self, case):
        """Test populated documentId objects are used directly"""
        uploads = normalize_uploads(case['uploads'], [])
        payslip = next(u for u in uploads if u.field_key == 'employment_proof')
        assert payslip.document.original_filename == 'payslip.pdf'
        assert next(u for u in uploads if u.field_key == 'uan').document is None


class TestDocumentResolver:
    """Test resolving documents onto check sections"""

    def test_exact_match_first(self, case):
        """Test exact fieldKey matches win over prefix matches"""
        resolver = DocumentResolver(case)
        found = resolver.get_uploads_for_field('ADDRESS_VERIFICATION__current')
        assert [d.id for d in found] == ['d1', 'd4']

    def test_prefix_then_substring(self, case):
        """Test prefix and substring tiers"""
        resolver = DocumentResolver(case)
        assert [d.id for d in resolver.get_uploads_for_field('address_verification')] == ['d1', 'd2', 'd4']
        assert [d.id for d in resolver.get_uploads_for_field('proof')] == ['d3']
        assert resolver.get_uploads_for_field('') == []

    def test_section_documents_exclude_verified(self, case):
        """Test admin-verified files are not shown as candidate documents"""
        resolver = DocumentResolver(case)
        assert [d.id for d in resolver.documents_for_section('Address Verification', 'current')] == ['d1']
        assert [d.id for d in resolver.documents_for_section('address_verification', 'permanent')] == ['d2']

    def test_section_falls_back_to_check(self, case):
        """Test sections without their own uploads show the check's documents"""
        resolver = DocumentResolver(case)
        docs = resolver.documents_for_section('address_verification', 'preferences')
        assert [d.id for d in docs] == ['d1', 'd2']

    def test_employment_uses_known_prefixes(self, case):
        """Test legacy fieldKey prefixes are searched"""
        resolver = DocumentResolver(case)
        assert [d.id for d in resolver.submitted_documents_for('Employment Verification')] == ['d3']

    def test_documents_by_check_type(self, case):
        """Test documents tagged with the check type are included"""
        resolver = DocumentResolver(case)
        assert [d.id for d in resolver.submitted_documents_for('gap_analysis')] == ['d6']

    def test_verified_documents(self, case):
        """Test verified uploads are listed separately"""
        resolver = DocumentResolver(case)
        assert [d.id for d in resolver.verified_documents_for('UAN')] == ['d7']
        assert [d.id for d in resolver.submitted_documents_for('uan')] == ['d5']
