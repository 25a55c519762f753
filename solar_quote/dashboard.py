"""
Summaries for the admin dashboard: counts and a recent activity feed built
from loosely shaped backend records.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

import pandas as pd

COLLECTION_KEYS = ('data', 'items', 'results', 'leads', 'records', 'list', 'staff', 'rows')


@dataclass
class RecentActivity:
    id: str
    title: str
    time_label: str
    status: str  # 'completed' or 'in-progress'
    type: str  # 'booking', 'step', 'complaint' or 'amc'
    steps_label: Optional[str] = None


@dataclass
class DashboardStats:
    booking_count: Optional[int]
    staff_count: Optional[int]
    recent_activities: List[RecentActivity] = field(default_factory=list)


def extract_collection(source: Any) -> List[Any]:
    """Find the record list in a response that may wrap it in an envelope."""
    if isinstance(source, list):
        return source
    if isinstance(source, dict):
        for key in COLLECTION_KEYS:
            candidate = source.get(key)
            if isinstance(candidate, list):
                return candidate
    return []


def _get(record: Any, key: str) -> Any:
    return record.get(key) if isinstance(record, dict) else None


def _first(record: Any, *keys: str) -> Any:
    """First truthy value among keys."""
    for key in keys:
        value = _get(record, key)
        if value:
            return value
    return None


def _first_present(record: Any, *keys: str) -> Any:
    """First value among keys that is not None."""
    for key in keys:
        value = _get(record, key)
        if value is not None:
            return value
    return None


def _parse_timestamp(stamp: Any) -> Optional[pd.Timestamp]:
    if isinstance(stamp, bool):
        return None
    if isinstance(stamp, (int, float)):
        parsed = pd.to_datetime(stamp, unit='ms', utc=True, errors='coerce')
    else:
        parsed = pd.to_datetime(str(stamp), utc=True, errors='coerce')
    return None if pd.isna(parsed) else parsed


def format_relative_label(stamp: Any, now: Optional[pd.Timestamp] = None) -> Tuple[str, int]:
    """
    Describe how long ago a record changed.

    Args:
        stamp: ISO string or epoch milliseconds
        now: Reference time (UTC), the current time by default

    Returns:
        (label, epoch milliseconds); ('Unknown date', 0) when unparseable
    """
    if stamp is None or stamp == '':
        return 'Unknown date', 0
    ts = _parse_timestamp(stamp)
    if ts is None:
        return 'Unknown date', 0

    timestamp_ms = int(ts.value // 1_000_000)
    now = now if now is not None else pd.Timestamp.now(tz='UTC')
    minutes = int((now - ts).total_seconds() // 60)

    if minutes < 1:
        return 'Just now', timestamp_ms
    if minutes < 60:
        return f"{minutes} min{'' if minutes == 1 else 's'} ago", timestamp_ms
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'} ago", timestamp_ms
    days = hours // 24
    if days == 1:
        return 'Yesterday', timestamp_ms
    if days < 7:
        return f"{days} days ago", timestamp_ms
    return f"{ts.strftime('%b')} {ts.day}", timestamp_ms


def steps_info(lead: Any) -> Tuple[int, int]:
    """Return (total, completed) installation steps of a booking."""
    steps = _get(lead, 'steps')
    if not isinstance(steps, list):
        return 0, 0
    completed = sum(1 for step in steps if _get(step, 'completed'))
    return len(steps), completed


def _booking_activities(bookings: Iterable[Any], now) -> List[Tuple[RecentActivity, int]]:
    items = []
    for index, lead in enumerate(bookings):
        stamp = _first(lead, 'updatedAt', 'createdAt')
        time_label, timestamp = format_relative_label(stamp, now)
        total, completed = steps_info(lead)
        name = (_first(lead, 'customerName', 'fullName', 'name', 'email', 'phone')
                or f"Booking {index + 1}")
        lead_id = _first_present(lead, 'id', '_id', 'leadId', 'uuid', 'reference', 'email', 'phone')
        lead_id = str(lead_id if lead_id is not None else f"booking-{index}")

        items.append((RecentActivity(
            id=lead_id,
            title=name,
            time_label=time_label,
            status='completed' if total > 0 and completed >= total else 'in-progress',
            type='booking',
            steps_label=f"{completed}/{total} steps" if total else None,
        ), timestamp))

        steps = _get(lead, 'steps') if isinstance(_get(lead, 'steps'), list) else []
        for step_index, step in enumerate(steps):
            step_stamp = _first(step, 'updatedAt', 'completedAt')
            if not step_stamp and not _get(step, 'completed'):
                continue
            step_label, step_ts = format_relative_label(step_stamp or stamp, now)
            step_title = _first(step, 'title', 'name') or f"Step {step_index + 1}"
            items.append((RecentActivity(
                id=f"{lead_id}-step-{step_index}",
                title=f"{step_title} completed · {name}",
                time_label=step_label,
                status='completed',
                type='step',
            ), step_ts))
    return items


def _service_activities(records, kind, title_keys, done_word, default_title, now):
    items = []
    for index, record in enumerate(records):
        time_label, timestamp = format_relative_label(_first(record, 'updatedAt', 'createdAt'), now)
        record_id = _first_present(record, 'id', '_id')
        fallback_number = _get(record, 'id') if _get(record, 'id') is not None else index + 1
        title = _first(record, *title_keys) or f"{default_title} #{fallback_number}"
        status_text = str(_get(record, 'status') or '').lower()
        items.append((RecentActivity(
            id=str(record_id if record_id is not None else f"{kind}-{index}"),
            title=title,
            time_label=time_label,
            status='completed' if done_word in status_text else 'in-progress',
            type=kind,
        ), timestamp))
    return items


def build_recent_activities(
    bookings: Iterable[Any],
    complaints: Iterable[Any] = (),
    amc: Iterable[Any] = (),
    limit: int = 4,
    now: Optional[pd.Timestamp] = None
) -> List[RecentActivity]:
    """
    Merge bookings, completed steps, complaints and AMC services into one feed.

    Args:
        bookings: Booking (lead) records
        complaints: Complaint records
        amc: AMC service records
        limit: Maximum number of activities
        now: Reference time for relative labels

    Returns:
        Newest-first activities
    """
    items = _booking_activities(bookings, now)
    items += _service_activities(complaints, 'complaint', ('subject', 'title', 'message'),
                                 'resolved', 'Complaint', now)
    items += _service_activities(amc, 'amc', ('serviceName', 'title'),
                                 'complete', 'AMC Service', now)

    # Stable sort keeps source order for equal timestamps
    items.sort(key=lambda item: item[1], reverse=True)
    return [activity for activity, _ in items[:limit]]


def summarize_dashboard(bookings: Any, staff: Any, complaints: Any = None, amc: Any = None,
                        now: Optional[pd.Timestamp] = None) -> DashboardStats:
    booking_list = extract_collection(bookings)
    return DashboardStats(
        booking_count=len(booking_list),
        staff_count=len(extract_collection(staff)),
        recent_activities=build_recent_activities(
            booking_list,
            extract_collection(complaints),
            extract_collection(amc),
            now=now,
        ),
    )


def bookings_frame(bookings: Any) -> pd.DataFrame:
    """Tabulate bookings for display."""
    rows = []
    for index, lead in enumerate(extract_collection(bookings)):
        total, completed = steps_info(lead)
        rows.append({
            'Customer': _first(lead, 'customerName', 'fullName', 'name') or f"Booking {index + 1}",
            'Project': _get(lead, 'projectType'),
            'Size (kW)': _get(lead, 'sizedKW'),
            'Estimate (INR)': _get(lead, 'estimateINR'),
            'Steps': f"{completed}/{total}" if total else '—',
            'Updated': format_relative_label(_first(lead, 'updatedAt', 'createdAt'))[0],
        })
    return pd.DataFrame(rows, columns=['Customer', 'Project', 'Size (kW)', 'Estimate (INR)', 'Steps', 'Updated'])
