from datetime import datetime

import pytest

from shiftreport.errors import ReportValidationError
from shiftreport.models import FIELD_LIMITS, WORK_TYPES, ReportFormData
from shiftreport.validation import parse_search_filters, validate_report

from conftest import valid_form


def _errors(data):
    with pytest.raises(ReportValidationError) as exc:
        validate_report(data)
    return exc.value.errors


def test_valid_form_defaults_optional_fields_to_empty():
    payload = validate_report(valid_form())
    assert payload.work_date_from == datetime(2026, 1, 15, 8, 0)
    assert payload.work_date_to == datetime(2026, 1, 15, 17, 0)
    for field in ('work_detail', 'weather', 'break_time', 'overtime_time', 'assigned_guards',
                  'special_notes', 'special_notes_detail', 'traffic_guide_assignee_name',
                  'misc_guard_assignee_name', 'remarks'):
        assert getattr(payload, field) == ''
    assert payload.traffic_guide_assigned is False
    assert payload.misc_guard_assigned is False


def test_form_draft_and_mapping_validate_the_same():
    draft = ReportFormData(**valid_form(weather='晴れ'))
    assert validate_report(draft) == validate_report(valid_form(weather='晴れ'))


def test_camel_case_keys_are_accepted():
    payload = validate_report({
        'contractName': '契約先A',
        'guardLocation': '場所B',
        'workType': WORK_TYPES['PARKING_TRAFFIC'],
        'workDateFrom': '2026-02-01 09:00',
        'workDateTo': '2026-02-01 18:00',
        'breakTime': '60分',
    })
    assert payload.contract_name == '契約先A'
    assert payload.break_time == '60分'


def test_missing_required_fields_are_all_reported():
    errors = _errors({})
    assert set(errors) == {'contract_name', 'guard_location', 'work_type', 'work_date_from', 'work_date_to'}
    assert errors['contract_name'] == '契約先を入力してください'


def test_whitespace_only_required_field_is_empty():
    errors = _errors(valid_form(guard_location='   '))
    assert list(errors) == ['guard_location']


@pytest.mark.parametrize('end', ['2026-01-15T08:00:00', '2026-01-15T07:59:00', '2026-01-14T20:00:00'])
def test_end_not_after_start_is_attributed_to_end_field(end):
    errors = _errors(valid_form(work_date_to=end))
    assert list(errors) == ['work_date_to']


def test_end_before_start_still_reported_with_other_errors():
    errors = _errors(valid_form(contract_name='', work_date_to='2026-01-15T07:00:00'))
    assert 'work_date_to' in errors
    assert 'contract_name' in errors


@pytest.mark.parametrize('field', sorted(FIELD_LIMITS))
def test_overlong_field_is_named(field):
    limit = FIELD_LIMITS[field][0]
    data = valid_form(**{field: 'あ' * (limit + 1)})
    errors = _errors(data)
    assert field in errors


@pytest.mark.parametrize('field', sorted(FIELD_LIMITS))
def test_field_at_limit_is_accepted(field):
    limit = FIELD_LIMITS[field][0]
    overrides = {field: 'あ' * limit}
    if field == 'special_notes':
        pytest.skip('special_notes only accepts yes/no')
    if field.endswith('_assignee_name'):
        overrides[field.replace('_assignee_name', '_assigned')] = True
    payload = validate_report(valid_form(**overrides))
    assert getattr(payload, field) == 'あ' * limit


def test_contract_name_limit_is_200():
    assert FIELD_LIMITS['contract_name'][0] == 200
    assert 'contract_name' in _errors(valid_form(contract_name='x' * 201))


def test_invalid_timestamp():
    errors = _errors(valid_form(work_date_from='xyz'))
    assert errors['work_date_from'] == '有効な日時を入力してください'


def test_unknown_work_type_rejected():
    errors = _errors(valid_form(work_type='施設警備'))
    assert list(errors) == ['work_type']


def test_special_notes_tokens_normalized():
    assert validate_report(valid_form(special_notes='なし')).special_notes == 'no'
    payload = validate_report(valid_form(special_notes='あり', special_notes_detail='転倒事故あり'))
    assert payload.special_notes == 'yes'
    assert payload.special_notes_detail == '転倒事故あり'


def test_special_notes_yes_requires_detail():
    errors = _errors(valid_form(special_notes='yes'))
    assert list(errors) == ['special_notes_detail']


def test_assignee_name_requires_flag():
    errors = _errors(valid_form(misc_guard_assignee_name='佐藤 花子'))
    assert list(errors) == ['misc_guard_assignee_name']

    payload = validate_report(valid_form(misc_guard_assigned='true', misc_guard_assignee_name='佐藤 花子'))
    assert payload.misc_guard_assigned is True
    assert payload.traffic_guide_assigned is False


def test_aware_timestamps_are_converted_to_local_time():
    payload = validate_report(valid_form(work_date_from='2026-01-15T00:00:00Z',
                                         work_date_to='2026-01-15T09:00:00Z'))
    assert payload.work_date_from == datetime(2026, 1, 15, 9, 0)
    assert payload.work_date_to == datetime(2026, 1, 15, 18, 0)


def test_search_filters_aliases_and_blanks():
    filters = parse_search_filters({'startDate': '2026-01-01', 'endDate': '2026-01-31',
                                    'userId': '', 'contractName': ' 明石 '})
    assert filters.start_date == datetime(2026, 1, 1)
    assert filters.end_date == datetime(2026, 1, 31, 23, 59, 59)
    assert filters.owner_id is None
    assert filters.contract_name == '明石'
    assert parse_search_filters({}).is_empty()


def test_search_filters_reject_bad_date():
    with pytest.raises(ReportValidationError) as exc:
        parse_search_filters({'start_date': 'xyz'})
    assert 'start_date' in exc.value.errors


@pytest.mark.parametrize('field', ['traffic_guide_assigned', 'misc_guard_assigned'])
def test_unreadable_flag_gets_japanese_message(field):
    errors = _errors(valid_form(**{field: 'maybe'}))
    assert errors[field] == '検定合格者の配置は「あり」または「なし」を選択してください'
