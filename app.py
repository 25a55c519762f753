"""
Solar Quote Wizard
Streamlit application for sizing a rooftop solar system, pricing it and
booking a site survey.
"""

import asyncio
import logging
import os

import streamlit as st
import plotly.graph_objects as go

# Import package modules
from solar_quote.sizing import (
    compute_required_capacity_kw,
    suggest_panel_kind,
    watt_peak_options_for,
    default_watt_peak,
    panel_description,
    compute_plate_count,
    parse_bill_amount,
    PanelKind
)
from solar_quote.financial_calcs import (
    resolve_capacity_kw,
    compute_finance_projection,
    project_lifetime_savings,
    format_currency
)
from solar_quote.assumptions import CATEGORY_LABELS, FinanceAssumptions
from solar_quote.cache import TTLCache
from solar_quote.api_calls import (
    BackendError,
    get_auth_token,
    load_customer_bookings,
    load_admin_collections,
    build_lead_payload,
    missing_lead_fields,
    submit_lead
)
from solar_quote.dashboard import summarize_dashboard, bookings_frame

# Page configuration
st.set_page_config(
    page_title="Solar Quote Wizard",
    page_icon="☀️",
    layout="wide",
    initial_sidebar_state="expanded"
)

STEPS = ["1. Category", "2. Panel Size", "3. Panel Type", "4. Finance", "5. Details"]
BUDGET_TIERS = ['low', 'medium', 'high']


def get_base_url():
    """Get backend base URL from Streamlit secrets or environment variable."""
    try:
        return st.secrets["API_BASE_URL"]
    except (KeyError, FileNotFoundError):
        pass
    return os.environ.get("API_BASE_URL") or None


@st.cache_resource
def get_assumptions() -> FinanceAssumptions:
    """Load finance assumptions from the [assumptions] secrets table."""
    try:
        return FinanceAssumptions.from_mapping(st.secrets["assumptions"])
    except (KeyError, FileNotFoundError):
        return FinanceAssumptions()


@st.cache_resource
def get_request_cache() -> TTLCache:
    """One response cache shared by every session of this server."""
    return TTLCache()


def initialize_session_state():
    """Initialize session state variables."""
    defaults = {
        'step': 1,
        'category': 'residential',
        'budget': 'medium',
        'sun_condition': 'sunny',
        'bill_text': '',
        'billing_cycle': '1m',
        'capacity_kw': 0.0,
        'panel_kind': None,
        'watt_peak': None,
        'with_subsidy': True,
        'last_payload': None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def go_to(step: int):
    st.session_state.step = step
    st.rerun()


def render_step_indicator():
    """Render the step progress indicator."""
    cols = st.columns(len(STEPS))
    for i, (col, step_name) in enumerate(zip(cols, STEPS), 1):
        if i < st.session_state.step:
            col.markdown(f"✅ **{step_name}**")
        elif i == st.session_state.step:
            col.markdown(f"🔵 **{step_name}**")
        else:
            col.markdown(f"⚪ {step_name}")

    st.divider()


def render_navigation(back_step=None, next_step=None, next_label="Continue →"):
    col1, col2, col3 = st.columns([1, 1, 1])
    with col1:
        if back_step and st.button("← Back", use_container_width=True):
            go_to(back_step)
    with col3:
        if next_step and st.button(next_label, type="primary", use_container_width=True):
            go_to(next_step)


def bill_based_kw() -> float:
    a = get_assumptions()
    return compute_required_capacity_kw(
        st.session_state.bill_text,
        st.session_state.billing_cycle,
        tariff=a.tariff_inr,
        sun_hours=a.sun_hours,
        performance_ratio=a.performance_ratio
    )


def sized_kw() -> float:
    """Capacity chosen on step 2, else the estimate from the bill."""
    return resolve_capacity_kw(
        st.session_state.capacity_kw,
        st.session_state.bill_text,
        st.session_state.billing_cycle,
        get_assumptions()
    )


def step1_category():
    """Step 1: Project category, budget and site conditions."""
    st.header("🏠 Step 1: What are we powering?")

    col1, col2 = st.columns(2)

    with col1:
        category = st.radio(
            "Project Category",
            options=list(CATEGORY_LABELS.keys()),
            index=list(CATEGORY_LABELS.keys()).index(st.session_state.category),
            format_func=lambda x: CATEGORY_LABELS[x]
        )
        st.session_state.category = category

    with col2:
        budget = st.select_slider(
            "Budget",
            options=BUDGET_TIERS,
            value=st.session_state.budget,
            format_func=str.title
        )
        st.session_state.budget = budget

        sun = st.radio(
            "Typical Weather",
            options=['sunny', 'cloudy'],
            index=['sunny', 'cloudy'].index(st.session_state.sun_condition),
            format_func=str.title,
            horizontal=True
        )
        st.session_state.sun_condition = sun

    st.divider()
    render_navigation(next_step=2)


def step2_panel_size():
    """Step 2: Electricity bill and estimated system size."""
    st.header("⚡ Step 2: Panel Size")

    a = get_assumptions()
    col1, col2 = st.columns(2)

    with col1:
        bill_text = st.text_input(
            "Electricity Bill (₹)",
            value=st.session_state.bill_text,
            placeholder="4000",
            help="Amount from your latest bill"
        )
        st.session_state.bill_text = bill_text

        cycle = st.radio(
            "Bill covers",
            options=['1m', '2m'],
            index=['1m', '2m'].index(st.session_state.billing_cycle),
            format_func=lambda x: "1 month" if x == '1m' else "2 months",
            horizontal=True
        )
        st.session_state.billing_cycle = cycle

    estimated = bill_based_kw()

    with col2:
        st.metric("Estimated Size", f"{estimated:.2f} kW" if estimated > 0 else "—")
        st.caption(
            f"Assumes ~{a.sun_hours:g} sun hours/day, PR {a.performance_ratio:g} "
            f"(≈{a.monthly_generation_per_kw:g} kWh/kW/month) and ₹{a.tariff_inr:g}/unit tariff"
        )

        override = st.number_input(
            "System Size (kW)",
            min_value=0.0,
            max_value=1000.0,
            value=float(min(round(st.session_state.capacity_kw or estimated, 2), 1000.0)),
            step=0.5,
            help="Edit to size the system yourself"
        )
        st.session_state.capacity_kw = override

    st.divider()

    col1, col2, col3 = st.columns([1, 1, 1])
    with col1:
        if st.button("← Back", use_container_width=True):
            go_to(1)
    with col3:
        if st.button("Continue →", type="primary", use_container_width=True):
            if parse_bill_amount(bill_text) <= 0 and override <= 0:
                st.error("Please enter your bill amount or a system size.")
            else:
                go_to(3)


def step3_panel_type():
    """Step 3: Panel technology and module wattage."""
    st.header("🔆 Step 3: Panel Type")

    target_kw = sized_kw()
    recommended = suggest_panel_kind(
        st.session_state.category,
        st.session_state.budget,
        target_kw,
        st.session_state.sun_condition
    )
    kinds = [kind.value for kind in PanelKind]
    current = st.session_state.panel_kind or recommended.value

    col1, col2 = st.columns(2)

    with col1:
        st.markdown(f"**Recommended:** {recommended.value}")
        kind = st.selectbox(
            "Panel Technology",
            options=kinds,
            index=kinds.index(current),
        )
        st.caption(panel_description(kind))
        if kind != st.session_state.panel_kind:
            st.session_state.watt_peak = None
        st.session_state.panel_kind = kind

        options = watt_peak_options_for(kind)
        wp = st.session_state.watt_peak or default_watt_peak(kind)
        wp = st.radio(
            "Module Wattage (Wp)",
            options=options,
            index=options.index(wp) if wp in options else len(options) // 2,
            horizontal=True
        )
        st.session_state.watt_peak = wp

    plates = compute_plate_count(target_kw, wp)

    with col2:
        st.metric("Plates", f"{plates.plate_count}")
        st.metric("Total Capacity", f"{plates.total_kw:.2f} kW")
        st.metric("Required Capacity", f"{target_kw:.2f} kW" if target_kw > 0 else "—")

    st.divider()
    render_navigation(back_step=2, next_step=4)


def render_lifetime_chart(finance):
    projection = project_lifetime_savings(finance)
    if not projection.years:
        return

    fig = go.Figure()

    fig.add_trace(go.Scatter(
        x=projection.years,
        y=projection.cumulative_savings,
        mode='lines+markers',
        name='Cumulative Savings',
        line=dict(color='green', width=3),
        fill='tozeroy',
        fillcolor='rgba(0, 255, 0, 0.1)'
    ))

    # Add break-even line
    fig.add_hline(y=0, line_dash="dash", line_color="red",
                  annotation_text="Break-even")

    fig.update_layout(
        xaxis_title="Year",
        yaxis_title="Cumulative Savings (₹)",
        hovermode='x unified',
        height=400
    )

    st.plotly_chart(fig, use_container_width=True)
    if projection.payback_year:
        st.caption(f"Pays back in year {projection.payback_year}; "
                   f"{finance.life_years}-year savings {format_currency(projection.lifetime_savings)}")


def step4_finance():
    """Step 4: Investment and returns."""
    st.header("💰 Step 4: Investment & Returns")

    choice = st.radio(
        "Pricing",
        ["With Subsidy", "Without Subsidy"],
        index=0 if st.session_state.with_subsidy else 1,
        horizontal=True
    )
    st.session_state.with_subsidy = choice == "With Subsidy"

    finance = compute_finance_projection(sized_kw(), get_assumptions(), st.session_state.with_subsidy)

    col1, col2 = st.columns([1, 1])

    with col1:
        st.subheader(f"☀️ {finance.capacity_kw or '—'} kW System")
        st.metric("Without Subsidy", format_currency(finance.total_without_subsidy))
        st.metric("With Subsidy", format_currency(finance.total_with_subsidy))
        if finance.gst_amount:
            st.metric(f"GST ({finance.gst_pct:g}%)", format_currency(finance.gst_amount))
        label = "Total Investment"
        if finance.with_subsidy and finance.subsidy_savings:
            label += f" (after subsidy savings {format_currency(finance.subsidy_savings)})"
        st.metric(label, format_currency(finance.investment_used))
        st.divider()
        st.metric("Annual Generation", f"{finance.annual_gen_all_kw:,.0f} kWh" if finance.annual_gen_all_kw else "—")
        st.metric("ROI", f"{finance.roi_pct:.1f}%" if finance.roi_pct else "—")
        st.metric("Break-even", f"{finance.break_even_years:.1f} years" if finance.break_even_years else "—")
        st.metric("Monthly Savings", format_currency(finance.monthly_savings))

    with col2:
        st.subheader("📈 Cumulative Savings Over Time")
        render_lifetime_chart(finance)

    st.divider()
    render_navigation(back_step=3, next_step=5)


def step5_details():
    """Step 5: Contact details and lead submission."""
    st.header("📝 Step 5: Your Details")

    with st.form("lead_form"):
        col1, col2 = st.columns(2)
        with col1:
            full_name = st.text_input("Full Name")
            phone = st.text_input("Phone")
            email = st.text_input("Email")
            address = st.text_input("Address")
            street = st.text_input("Street")
        with col2:
            city = st.text_input("City")
            state = st.text_input("State")
            country = st.text_input("Country", value="India")
            zip_code = st.text_input("ZIP")
            pincode = st.text_input("Installation Pincode")
            provider = st.text_input("Electricity Provider", placeholder="e.g. Torrent Power")
        submitted = st.form_submit_button("Submit", type="primary", use_container_width=True)

    if submitted:
        finance = compute_finance_projection(sized_kw(), get_assumptions(), st.session_state.with_subsidy)
        target_kw = sized_kw()
        plates = compute_plate_count(target_kw, st.session_state.watt_peak) if st.session_state.watt_peak else None

        payload = build_lead_payload(
            contact={
                'fullName': full_name, 'phone': phone, 'email': email,
                'address': address, 'street': street, 'zip': zip_code,
                'state': state, 'city': city, 'country': country,
            },
            category=st.session_state.category,
            bill_amount=st.session_state.bill_text,
            billing_cycle=st.session_state.billing_cycle,
            capacity_kw=st.session_state.capacity_kw,
            finance=finance,
            budget=st.session_state.budget,
            watt_peak=st.session_state.watt_peak,
            plates=plates.plate_count if plates else None,
            pincode=pincode,
            provider=provider
        )

        missing = missing_lead_fields(payload)
        base_url = get_base_url()
        if missing:
            st.error(f"Please fill: {', '.join(missing)}")
        elif base_url:
            with st.spinner("Submitting..."):
                result = submit_lead(base_url, payload, get_auth_token())
            if result.success:
                st.session_state.last_payload = payload
                st.success("✅ Your details were submitted successfully.")
            else:
                st.error(f"Submit failed: {result.error}")
        else:
            st.session_state.last_payload = payload
            st.info("No backend configured; quote kept in this session only.")

    st.divider()
    render_navigation(back_step=4)


def render_my_bookings():
    """Sidebar panel: the customer's bookings."""
    base_url = get_base_url()
    if not base_url:
        st.caption("Set API_BASE_URL to see bookings.")
        return

    force = st.button("🔄 Refresh bookings", key="refresh_bookings")
    try:
        bookings = asyncio.run(load_customer_bookings(
            base_url, get_request_cache(), get_auth_token(), force=force
        ))
    except BackendError as e:
        st.error(f"Failed to load bookings: {e}")
        if st.button("Retry", key="retry_bookings"):
            st.rerun()
        return

    if not bookings:
        st.caption("No bookings yet.")
        return
    st.dataframe(bookings_frame(bookings), hide_index=True, use_container_width=True)


def render_admin_overview():
    """Sidebar panel: admin counts and recent activity."""
    base_url = get_base_url()
    if not base_url:
        st.caption("Set API_BASE_URL to see dashboard stats.")
        return

    try:
        data = asyncio.run(load_admin_collections(base_url, get_request_cache(), get_auth_token()))
    except BackendError as e:
        st.error(f"Failed to load dashboard stats: {e}")
        if st.button("Retry", key="retry_admin"):
            st.rerun()
        return

    stats = summarize_dashboard(data.bookings, data.staff, data.complaints, data.amc)
    col1, col2 = st.columns(2)
    col1.metric("Bookings", stats.booking_count)
    col2.metric("Staff", stats.staff_count)
    for activity in stats.recent_activities:
        icon = "✅" if activity.status == 'completed' else "🕒"
        extra = f" · {activity.steps_label}" if activity.steps_label else ""
        st.markdown(f"{icon} **{activity.title}**{extra}  \n{activity.time_label}")


def main():
    """Main application entry point."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    # Initialize session state
    initialize_session_state()

    # Sidebar
    with st.sidebar:
        st.title("☀️ Solar Quote")
        st.markdown("**Size, price and book your rooftop system**")
        st.divider()

        # Quick navigation
        st.markdown("### Quick Jump")
        step = st.radio(
            "Go to step:",
            list(range(1, len(STEPS) + 1)),
            index=st.session_state.step - 1,
            format_func=lambda x: STEPS[x - 1],
            label_visibility="collapsed"
        )
        if step != st.session_state.step:
            go_to(step)

        st.divider()

        with st.expander("📋 My Bookings"):
            render_my_bookings()

        with st.expander("🛠️ Admin Overview"):
            render_admin_overview()

    # Main content
    st.title("☀️ Solar Quote Wizard")

    # Step indicator
    render_step_indicator()

    # Render current step
    if st.session_state.step == 1:
        step1_category()
    elif st.session_state.step == 2:
        step2_panel_size()
    elif st.session_state.step == 3:
        step3_panel_type()
    elif st.session_state.step == 4:
        step4_finance()
    elif st.session_state.step == 5:
        step5_details()


if __name__ == "__main__":
    main()
