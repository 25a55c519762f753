"""Sizing, finance and backend helpers for the Solar Quote wizard."""

from .sizing import (
    parse_bill_amount,
    compute_required_capacity_kw,
    suggest_panel_kind,
    watt_peak_options_for,
    default_watt_peak,
    panel_description,
    compute_plate_count,
    PanelKind,
    Category,
    BudgetTier,
    SunCondition,
    PlateCount
)

from .financial_calcs import (
    capacity_for_calc,
    lookup_subsidy_row,
    resolve_capacity_kw,
    compute_finance_projection,
    project_lifetime_savings,
    format_currency,
    FinancePayload,
    LifetimeProjection
)

from .assumptions import (
    SUBSIDY_TABLE,
    WATT_PEAK_OPTIONS,
    CATEGORY_LABELS,
    DEFAULT_ASSUMPTIONS,
    FinanceAssumptions,
    get_category_label
)

from .cache import (
    TTLCache,
    get_cached_value,
    fetch_with_cache,
    invalidate_cache
)

from .api_calls import (
    BackendError,
    SubmitResult,
    get_auth_token,
    fetch_json,
    load_customer_bookings,
    load_admin_collections,
    build_lead_payload,
    missing_lead_fields,
    normalize_provider,
    submit_lead
)

from .dashboard import (
    extract_collection,
    format_relative_label,
    build_recent_activities,
    summarize_dashboard,
    bookings_frame,
    DashboardStats,
    RecentActivity
)
