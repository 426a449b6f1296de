"""
Field monitoring helpers.

Pure functions over monitoring record dicts (the shape returned by
``MonitoringRecord.to_dict()``). Dates may be ``date``, ``datetime`` or
ISO formatted strings.
"""
import random
import time
from datetime import date, datetime

FARM_CONDITIONS = ['Healthy', 'Needs Support', 'Damaged']

GROWTH_STAGES = [
    'Land Preparation',
    'Planting',
    'Seedling',
    'Vegetative',
    'Mature',
    'Ready for Harvest',
    'Harvesting',
    'Post-Harvest'
]

COMMON_ISSUES = [
    'No Issues',
    'Pest Infestation',
    'Disease',
    'Flood Damage',
    'Drought',
    'Low Yield',
    'Soil Issues',
    'Weed Overgrowth',
    'Nutrient Deficiency',
    'Poor Drainage',
    'Weather Damage',
    'Equipment Issues',
    'Labor Shortage',
    'Other'
]

MONITORING_STATUSES = ['Ongoing', 'Completed']


def to_date(value):
    """Normalise a date, datetime or ISO string to a ``date`` (or None)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()


def generate_monitoring_id():
    timestamp = int(time.time() * 1000)
    return f"MON-{timestamp}-{random.randint(0, 999):03d}"


def days_until_monitoring(next_date, today=None):
    """Signed number of whole days between today and ``next_date``."""
    today = to_date(today) or date.today()
    return (to_date(next_date) - today).days


def is_overdue(next_date, today=None):
    if not next_date:
        return False
    return days_until_monitoring(next_date, today) < 0


def is_upcoming(next_date, today=None):
    # A visit scheduled for today still counts as upcoming
    if not next_date:
        return False
    return days_until_monitoring(next_date, today) >= 0


def latest_record_per_farmer(records):
    """Most recent Ongoing record for each farmer, first one wins on a tie."""
    latest = {}
    for record in records:
        if record.get('status') != 'Ongoing':
            continue
        farmer_id = record.get('farmer_id')
        existing = latest.get(farmer_id)
        if existing is None or to_date(record.get('date_of_visit')) > to_date(existing.get('date_of_visit')):
            latest[farmer_id] = record
    return list(latest.values())


def _scheduled(records, predicate, today):
    matches = [
        r for r in latest_record_per_farmer(records)
        if r.get('next_monitoring_date') and predicate(r['next_monitoring_date'], today)
    ]
    return sorted(matches, key=lambda r: to_date(r['next_monitoring_date']))


def upcoming_monitoring(records, today=None):
    return _scheduled(records, is_upcoming, today)


def overdue_monitoring(records, today=None):
    return _scheduled(records, is_overdue, today)


def calculate_stats(records, today=None):
    latest = latest_record_per_farmer(records)
    return {
        'total_monitoring': len(records),
        'healthy_farms': sum(1 for r in latest if r.get('farm_condition') == 'Healthy'),
        'needs_support': sum(1 for r in latest if r.get('farm_condition') == 'Needs Support'),
        'damaged_farms': sum(1 for r in latest if r.get('farm_condition') == 'Damaged'),
        'upcoming_monitoring': len(upcoming_monitoring(records, today)),
        'overdue_monitoring': len(overdue_monitoring(records, today))
    }


def filter_records(records, filters):
    """
    Apply list filters. Supported keys: date_from, date_to, farmer_id,
    farm_condition, growth_stage, status, monitored_by. Empty values are ignored.
    """
    date_from = to_date(filters.get('date_from'))
    date_to = to_date(filters.get('date_to'))
    farmer_id = filters.get('farmer_id')
    monitored_by = (filters.get('monitored_by') or '').strip().lower()

    result = []
    for record in records:
        visit = to_date(record.get('date_of_visit'))
        if date_from and visit < date_from:
            continue
        if date_to and visit > date_to:
            continue
        if farmer_id and str(record.get('farmer_id')) != str(farmer_id):
            continue
        if any(filters.get(key) and record.get(key) != filters.get(key)
               for key in ('farm_condition', 'growth_stage', 'status')):
            continue
        if monitored_by and monitored_by not in (record.get('monitored_by') or '').lower():
            continue
        result.append(record)
    return result


def sort_by_date(records):
    return sorted(records, key=lambda r: to_date(r.get('date_of_visit')), reverse=True)


def validate_monitoring_form(data):
    """Return a list of validation errors; empty when the form is valid."""
    errors = []

    if not data.get('date_of_visit'):
        errors.append('Date of visit is required')
    if not data.get('monitored_by'):
        errors.append('Monitored by is required')
    if not data.get('farmer_id') and not data.get('farmer_name'):
        errors.append('Farmer is required')

    condition = data.get('farm_condition')
    if not condition:
        errors.append('Farm condition is required')
    elif condition not in FARM_CONDITIONS:
        errors.append(f"Farm condition must be one of: {', '.join(FARM_CONDITIONS)}")

    stage = data.get('growth_stage')
    if not stage:
        errors.append('Growth stage is required')
    elif stage not in GROWTH_STAGES:
        errors.append(f"Growth stage must be one of: {', '.join(GROWTH_STAGES)}")

    for field, label in (('actions_taken', 'Actions taken'), ('recommendations', 'Recommendations')):
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f'{label} must be text')
        elif not (value or '').strip():
            errors.append(f'{label} is required')

    status = data.get('status') or 'Ongoing'
    if status not in MONITORING_STATUSES:
        errors.append(f"Status must be one of: {', '.join(MONITORING_STATUSES)}")

    if status != 'Completed' and not data.get('next_monitoring_date'):
        errors.append('Next monitoring date is required')

    visit_date = next_date = None
    try:
        visit_date = to_date(data.get('date_of_visit'))
    except ValueError:
        errors.append('Date of visit must be a valid date (YYYY-MM-DD)')
    try:
        next_date = to_date(data.get('next_monitoring_date'))
    except ValueError:
        errors.append('Next monitoring date must be a valid date (YYYY-MM-DD)')

    if visit_date and next_date and next_date <= visit_date:
        errors.append('Next monitoring date must be after the visit date')

    return errors
