import re
from datetime import date, datetime

from monitoring import (
    generate_monitoring_id, days_until_monitoring, is_overdue, is_upcoming,
    latest_record_per_farmer, upcoming_monitoring, overdue_monitoring, calculate_stats,
    filter_records, sort_by_date, validate_monitoring_form
)

TODAY = date(2024, 6, 15)


def record(farmer_id, visit, next_date=None, status='Ongoing', condition='Healthy', **extra):
    data = {
        'monitoring_id': f"MON-{farmer_id}-{visit}",
        'farmer_id': farmer_id,
        'date_of_visit': visit,
        'next_monitoring_date': next_date,
        'status': status,
        'farm_condition': condition,
        'growth_stage': 'Vegetative',
        'monitored_by': 'Juan Dela Cruz'
    }
    data.update(extra)
    return data


def valid_form(**overrides):
    data = {
        'date_of_visit': '2024-06-01',
        'monitored_by': 'Juan Dela Cruz',
        'farmer_id': 7,
        'farm_condition': 'Healthy',
        'growth_stage': 'Mature',
        'actions_taken': 'Cleared weeds around the hills',
        'recommendations': 'Apply organic fertilizer',
        'next_monitoring_date': '2024-07-01'
    }
    data.update(overrides)
    return data


def test_generate_monitoring_id_format():
    assert re.match(r'^MON-\d{13}-\d{3}$', generate_monitoring_id())


def test_days_until_monitoring_uses_day_precision():
    assert days_until_monitoring('2024-06-20', today=TODAY) == 5
    assert days_until_monitoring(datetime(2024, 6, 14, 23, 59), today=TODAY) == -1
    assert days_until_monitoring(date(2024, 6, 15), today=TODAY) == 0


def test_due_today_counts_as_upcoming_not_overdue():
    assert is_upcoming('2024-06-15', today=TODAY)
    assert not is_overdue('2024-06-15', today=TODAY)
    assert is_overdue('2024-06-14', today=TODAY)
    assert not is_upcoming('2024-06-14', today=TODAY)


def test_missing_next_date_is_neither_upcoming_nor_overdue():
    assert not is_upcoming(None)
    assert not is_overdue(None)
    assert not is_overdue('')


def test_latest_record_per_farmer_ignores_completed_records():
    records = [
        record(1, '2024-05-01'),
        record(1, '2024-06-01', status='Completed'),
        record(2, '2024-04-01'),
        record(2, '2024-05-20'),
    ]
    latest = {r['farmer_id']: r['date_of_visit'] for r in latest_record_per_farmer(records)}
    assert latest == {1: '2024-05-01', 2: '2024-05-20'}


def test_latest_record_per_farmer_keeps_first_on_tie():
    first = record(1, '2024-05-01', monitoring_id='first')
    second = record(1, '2024-05-01', monitoring_id='second')
    assert latest_record_per_farmer([first, second]) == [first]


def test_upcoming_uses_only_latest_record_and_sorts_ascending():
    records = [
        # farmer 1: older visit has an upcoming date, latest one is overdue
        record(1, '2024-04-01', next_date='2024-07-01'),
        record(1, '2024-05-01', next_date='2024-06-01'),
        record(2, '2024-05-10', next_date='2024-06-30'),
        record(3, '2024-05-12', next_date='2024-06-15'),
        record(4, '2024-05-12', next_date=None),
    ]
    upcoming = upcoming_monitoring(records, today=TODAY)
    assert [r['farmer_id'] for r in upcoming] == [3, 2]

    overdue = overdue_monitoring(records, today=TODAY)
    assert [r['farmer_id'] for r in overdue] == [1]


def test_calculate_stats():
    records = [
        record(1, '2024-04-01', next_date='2024-05-01', condition='Damaged'),
        record(1, '2024-05-01', next_date='2024-06-01', condition='Needs Support'),
        record(2, '2024-05-10', next_date='2024-06-30', condition='Healthy'),
        record(3, '2024-05-12', status='Completed', condition='Damaged'),
    ]
    assert calculate_stats(records, today=TODAY) == {
        'total_monitoring': 4,
        'healthy_farms': 1,
        'needs_support': 1,
        'damaged_farms': 0,
        'upcoming_monitoring': 1,
        'overdue_monitoring': 1
    }


def test_calculate_stats_empty():
    stats = calculate_stats([], today=TODAY)
    assert stats['total_monitoring'] == 0
    assert stats['upcoming_monitoring'] == 0


def test_filter_records_date_range_is_inclusive():
    records = [record(1, '2024-05-01'), record(1, '2024-05-15'), record(1, '2024-05-31')]
    result = filter_records(records, {'date_from': '2024-05-01', 'date_to': '2024-05-15'})
    assert [r['date_of_visit'] for r in result] == ['2024-05-01', '2024-05-15']


def test_filter_records_exact_and_substring_matches():
    records = [
        record(1, '2024-05-01', condition='Healthy', monitored_by='Juan Dela Cruz'),
        record(2, '2024-05-02', condition='Damaged', monitored_by='Ana Lim'),
        record(2, '2024-05-03', condition='Healthy', monitored_by='Ana Lim', status='Completed'),
    ]
    assert len(filter_records(records, {'farmer_id': '2'})) == 2
    assert len(filter_records(records, {'farm_condition': 'Healthy'})) == 2
    assert len(filter_records(records, {'status': 'Completed'})) == 1
    assert [r['farmer_id'] for r in filter_records(records, {'monitored_by': 'dela'})] == [1]
    assert filter_records(records, {'farm_condition': ''}) == records


def test_sort_by_date_returns_new_list_newest_first():
    records = [record(1, '2024-05-01'), record(2, '2024-06-01'), record(3, '2024-04-01')]
    result = sort_by_date(records)
    assert [r['farmer_id'] for r in result] == [2, 1, 3]
    assert records[0]['farmer_id'] == 1


def test_validate_monitoring_form_accepts_valid_data():
    assert validate_monitoring_form(valid_form()) == []


def test_validate_monitoring_form_reports_missing_fields():
    errors = validate_monitoring_form({'actions_taken': '   '})
    assert 'Date of visit is required' in errors
    assert 'Monitored by is required' in errors
    assert 'Farmer is required' in errors
    assert 'Farm condition is required' in errors
    assert 'Growth stage is required' in errors
    assert 'Actions taken is required' in errors
    assert 'Recommendations is required' in errors
    assert 'Next monitoring date is required' in errors


def test_validate_monitoring_form_next_date_optional_when_completed():
    assert validate_monitoring_form(valid_form(status='Completed', next_monitoring_date=None)) == []


def test_validate_monitoring_form_next_date_must_follow_visit():
    errors = validate_monitoring_form(valid_form(next_monitoring_date='2024-06-01'))
    assert errors == ['Next monitoring date must be after the visit date']


def test_validate_monitoring_form_rejects_unknown_values():
    errors = validate_monitoring_form(valid_form(farm_condition='Excellent', growth_stage='Flowering', status='Paused'))
    assert len(errors) == 3


def test_validate_monitoring_form_accepts_farmer_name_only():
    form = valid_form(farmer_id=None, farmer_name='Pedro Reyes')
    assert validate_monitoring_form(form) == []


def test_validate_monitoring_form_requires_text_notes():
    errors = validate_monitoring_form(valid_form(actions_taken=['weeded'], recommendations={'note': 'x'}))
    assert errors == ['Actions taken must be text', 'Recommendations must be text']
