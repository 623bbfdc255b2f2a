import pytest
from casedesk.services.reconciler import (
    annotate, merge_checks, keyed_checks, find_saved_check, expand_comments,
    flatten_comments, parse_verified_data, review_sections
)


def check(check_type, status='Pending', **extra):
    return {'checkType': check_type, 'status': status, **extra}


class TestMergeChecks:
    """Test merging server checks into the shown list"""

    def test_keeps_previous_order_and_unechoed_checks(self):
        """Test reordered and partial server lists keep the shown order"""
        previous = [annotate(check('uan')), annotate(check('gap_analysis')), annotate(check('police_verification'))]
        server = [check('gap_analysis', 'Clear'), check('uan', 'Discrepant')]

        merged = merge_checks(previous, server)

        assert [c['checkType'] for c in merged] == ['uan', 'gap_analysis', 'police_verification']
        assert [c['status'] for c in merged] == ['Discrepant', 'Clear', 'Pending']

    def test_server_only_checks_appended(self):
        """Test checks only the server knows are added at the end"""
        previous = [annotate(check('uan'))]
        merged = merge_checks(previous, [check('global_database'), check('uan', 'Clear')])
        assert [c['checkType'] for c in merged] == ['uan', 'global_database']
        assert merged[1]['_displayName'] == 'Global Database'

    def test_display_name_preserved(self):
        """Test a renamed server check keeps the shown display name"""
        previous = [annotate(check('uan', displayName='UAN Check'))]
        merged = merge_checks(previous, [check('UAN', 'Clear', displayName='Universal Account Number')])
        assert len(merged) == 1
        assert merged[0]['_displayName'] == 'UAN Check'
        assert merged[0]['status'] == 'Clear'

    def test_repeated_check_types(self):
        """Test repeated check types are matched by occurrence"""
        previous = [annotate(check('uan', note='first')), annotate(check('uan', note='second'))]
        merged = merge_checks(previous, [check('uan', 'Clear'), check('uan', 'Amber')])
        assert [c['status'] for c in merged] == ['Clear', 'Amber']
        assert [c['note'] for c in merged] == ['first', 'second']

    def test_empty_previous(self):
        """Test the first load takes the server list as is"""
        merged = merge_checks([], [check('uan'), check('gap_analysis')])
        assert [c['_normalized'] for c in merged] == ['uan', 'gap_analysis']

    def test_keyed_checks_suffix(self):
        """Test repeated identities get occurrence suffixes"""
        keys = [key for key, _ in keyed_checks([check('uan'), check('uan'), {}])]
        assert keys == ['uan', 'uan#2', '__check_2']


class TestFindSavedCheck:
    """Test locating a saved check in the server response"""

    def test_by_identity(self):
        """Test the saved check is found among several"""
        saved = annotate(check('uan'))
        found = find_saved_check(saved, [check('gap_analysis'), check('uan', 'Clear')])
        assert found['status'] == 'Clear'

    def test_single_fallback(self):
        """Test a lone returned check is taken only when allowed"""
        saved = annotate(check('uan'))
        server = [check('something_else')]
        assert find_saved_check(saved, server) is server[0]
        assert find_saved_check(saved, server, allow_single=False) is None


class TestComments:
    """Test comment shapes"""

    @pytest.mark.parametrize('check_type,stored', [
        ('uan', 'Looks fine'),
        ('address_verification', {'current': 'Visited', 'permanent': 'Pending visit'}),
        ('Employment Verification', {'current': 'HR confirmed'}),
    ])
    def test_round_trip(self, check_type, stored):
        """Test expanding then flattening returns the stored form"""
        assert flatten_comments(expand_comments(stored, check_type), check_type) == stored

    def test_empty_comments(self):
        """Test missing comments expand to an empty form"""
        assert expand_comments(None) == {}
        assert expand_comments('') == {}
        assert flatten_comments({}, 'uan') == ''
        assert flatten_comments({}, 'address_verification') == {}

    def test_plain_string_on_multi_section_check(self):
        """Test a legacy string comment is kept under the default key"""
        working = expand_comments('Old note', 'address_verification')
        assert flatten_comments(working, 'address_verification') == {'_default': 'Old note'}


class TestReviewHelpers:
    """Test verified data parsing and review sections"""

    def test_parse_verified_data(self):
        """Test verified data arrives as an object or a JSON string"""
        assert parse_verified_data({'current': {'detail1': 'ok'}}) == {'current': {'detail1': 'ok'}}
        assert parse_verified_data('{"_default": {"detail1": "ok"}}') == {'_default': {'detail1': 'ok'}}
        assert parse_verified_data('free text') == {'value': 'free text'}
        assert parse_verified_data(None) == {}

    def test_review_sections(self):
        """Test multi-section checks review each filled section"""
        address = check('address_verification', params={
            'current': {'line1': 'A'}, 'permanent': {'line1': 'B'}, 'preferences': {'mode': 'Digital'}})
        assert review_sections(address) == ['current', 'permanent']
        assert review_sections(check('uan', params={'_self': {'uan': '1'}})) == ['_default']
