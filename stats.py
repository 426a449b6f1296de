"""Aggregations behind the dashboard statistics endpoints."""
from datetime import date

from monitoring import to_date


def _num(value):
    return float(value or 0)


def association_distribution_status(total, distributed):
    """Derive an association distribution's status from how much reached farmers."""
    if distributed >= total:
        return 'fully_distributed_to_farmers'
    if distributed == 0:
        return 'distributed_to_association'
    return 'partially_distributed_to_farmers'


def seedling_stats(rows, recent_limit=5):
    by_variety = {}
    for row in rows:
        variety = row.get('variety') or 'Unknown'
        by_variety[variety] = by_variety.get(variety, 0) + (row.get('quantity_distributed') or 0)

    recent = sorted(
        rows,
        key=lambda r: to_date(r.get('date_distributed')) or date.min,
        reverse=True
    )[:recent_limit]

    return {
        'totalDistributions': len(rows),
        'totalQuantity': sum(r.get('quantity_distributed') or 0 for r in rows),
        'byVariety': by_variety,
        'recentDistributions': recent
    }


def distribution_stats(assoc_rows, farmer_rows, today=None):
    today = to_date(today) or date.today()
    month_start = today.replace(day=1)

    def this_month(rows):
        return sum(1 for r in rows if (to_date(r.get('date_distributed')) or date.min) >= month_start)

    to_associations = sum(r.get('quantity_distributed') or 0 for r in assoc_rows)
    to_farmers = sum(r.get('quantity_distributed') or 0 for r in farmer_rows)
    planted = sum(r.get('quantity_distributed') or 0 for r in farmer_rows if r.get('status') == 'planted')

    return {
        'association_distributions': {
            'total': len(assoc_rows),
            'this_month': this_month(assoc_rows),
            'total_quantity': to_associations
        },
        'farmer_distributions': {
            'total': len(farmer_rows),
            'this_month': this_month(farmer_rows),
            'total_quantity': to_farmers,
            'planted_quantity': planted
        },
        'overall': {
            'total_distributions': len(assoc_rows) + len(farmer_rows),
            'total_seedlings': to_associations,
            'distributed_to_farmers': to_farmers,
            'planted_seedlings': planted,
            'planting_rate': f"{planted / to_farmers * 100:.1f}" if to_farmers > 0 else '0'
        }
    }


def harvest_stats(rows):
    count = len(rows)
    return {
        'total_harvests': count,
        'pending': sum(1 for h in rows if h.get('status') == 'Pending Verification'),
        'verified': sum(1 for h in rows if h.get('status') == 'Verified'),
        'rejected': sum(1 for h in rows if h.get('status') == 'Rejected'),
        'in_inventory': sum(1 for h in rows if h.get('status') == 'In Inventory'),
        'total_fiber_kg': sum(_num(h.get('dry_fiber_output_kg')) for h in rows),
        'total_area_hectares': sum(_num(h.get('area_hectares')) for h in rows),
        'avg_yield_per_hectare': (
            sum(_num(h.get('yield_per_hectare_kg')) for h in rows) / count if count else 0
        )
    }


def inventory_stats(rows):
    """Fiber held in the CUSAFA inventory, in total and per abaca variety."""
    by_variety = {}
    for h in rows:
        variety = h.get('abaca_variety') or 'Unknown'
        by_variety[variety] = by_variety.get(variety, 0.0) + _num(h.get('dry_fiber_output_kg'))
    total = sum(by_variety.values())
    return {
        'totalQuantity': total,
        'inStock': total,
        'totalItems': len(rows),
        'byVariety': by_variety
    }


def farmer_harvest_summary(rows):
    """Per-farmer harvest totals, highest fiber producers first."""
    summary = {}
    for h in rows:
        entry = summary.setdefault(h.get('farmer_id'), {
            'farmer_id': h.get('farmer_id'),
            'farmer_name': h.get('farmer_name'),
            'municipality': h.get('municipality'),
            'barangay': h.get('barangay'),
            'total_harvests': 0,
            'verified_harvests': 0,
            'total_fiber_produced_kg': 0.0,
            'total_area_hectares': 0.0,
            'latest_harvest_date': None
        })
        entry['total_harvests'] += 1
        if h.get('status') in ('Verified', 'In Inventory'):
            entry['verified_harvests'] += 1
        entry['total_fiber_produced_kg'] += _num(h.get('dry_fiber_output_kg'))
        entry['total_area_hectares'] += _num(h.get('area_hectares'))

        harvested = to_date(h.get('harvest_date'))
        latest = to_date(entry['latest_harvest_date'])
        if harvested and (latest is None or harvested > latest):
            entry['latest_harvest_date'] = harvested.isoformat()

    return sorted(summary.values(), key=lambda e: e['total_fiber_produced_kg'], reverse=True)


def delivery_stats(rows):
    return {
        'total_deliveries': len(rows),
        'in_transit': sum(1 for d in rows if d.get('status') == 'In Transit'),
        'confirmed': sum(1 for d in rows if d.get('status') == 'Confirmed'),
        'delivered': sum(1 for d in rows if d.get('status') == 'Delivered'),
        'completed': sum(1 for d in rows if d.get('status') == 'Completed'),
        'cancelled': sum(1 for d in rows if d.get('status') == 'Cancelled'),
        'total_quantity': sum(_num(d.get('quantity_kg')) for d in rows),
        'total_revenue': sum(_num(d.get('total_amount')) for d in rows if d.get('payment_status') == 'Paid'),
        'pending_payment': sum(_num(d.get('total_amount')) for d in rows if d.get('payment_status') == 'Pending')
    }
