"""
app.py
Streamlit admin console for the gym SaaS billing engine.
Thin client: every action goes through BillingService, then the page re-reads state.
Run: streamlit run app.py
"""

from __future__ import annotations

from decimal import Decimal

import streamlit as st

import auth
import config
import utils
from db import Database
from errors import BillingError
from models import ACTIVE, DURATION_UNITS, INACTIVE
from service import BillingService

st.set_page_config(page_title="Gym SaaS Billing", layout="wide")


@st.cache_resource
def get_service() -> BillingService:
    config.configure_logging()
    db = Database()
    auth.init_auth(db)
    return BillingService(db)


def require_login():
    if "caller" not in st.session_state:
        st.session_state.caller = None


def logout():
    st.session_state.caller = None
    st.success("Logged out.")


def run_action(fn, success) -> bool:
    """
    Run one engine call and surface its error kind + cause (never a partial update).
    `success` is a message or a callable building one from the result. It is kept in
    session state and shown by show_flash() after the st.rerun() that follows.
    """
    try:
        result = fn()
    except BillingError as exc:
        st.error(f"{exc.kind}: {exc}")
        return False
    message = success(result) if callable(success) else success
    st.session_state.flash = message
    return True


def show_flash():
    message = st.session_state.pop("flash", None)
    if message:
        st.success(message)


def money(value) -> str:
    return f"{Decimal(value):,.2f}"


def payout_message(payout) -> str:
    if payout is None:
        return "Nothing pending."
    return f"Paid {money(payout.amount)} ({payout.commission_count} commissions)."


def plan_options(plans) -> dict:
    # Label carries the id so identical plans stay distinct
    return {f"{p.name} ({money(p.price)} / {p.duration_label}) - ID {p.id}": p.id for p in plans}


def agent_options(agents) -> dict:
    return {"(direct sale)": None} | {f"{a.name} - ID {a.id}": a.id for a in agents}


def login_screen(svc: BillingService):
    st.title("🔐 Billing Console Login")

    col1, col2 = st.columns([1, 1])
    with col1:
        username = st.text_input("Username", value=config.DEFAULT_ADMIN_USERNAME)
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            caller = auth.login(svc.db, username.strip(), password)
            if caller:
                st.session_state.caller = caller
                st.rerun()
            else:
                st.error("Invalid username or password.")

    with col2:
        st.info(
            "First run creates a default superadmin:\n\n"
            f"- username: **{config.DEFAULT_ADMIN_USERNAME}**\n"
            f"- password: **{config.DEFAULT_ADMIN_PASSWORD}**\n\n"
            "You will be forced to change it on first login."
        )


def force_change_password_screen(svc: BillingService):
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the console.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        if run_action(lambda: auth.change_password(svc.db, st.session_state.caller.username, new1),
                      "Password updated. You can continue."):
            st.rerun()


def dashboard_page(svc: BillingService):
    st.header("📊 Dashboard")

    m = svc.metrics_snapshot()
    c1, c2, c3 = st.columns(3)
    c1.metric("MRR", money(m.mrr))
    c2.metric("Active gyms", m.active_count)
    c3.metric("Annual projection", money(m.annual_projection))

    st.divider()

    st.subheader(f"Expiring soon (next {config.EXPIRING_SOON_DAYS} days)")
    rows = svc.expiring_soon()
    if rows:
        st.dataframe(utils.records_to_frame(rows), use_container_width=True, hide_index=True)
    else:
        st.caption("No gyms expiring soon.")

    if auth.can_mutate_billing(st.session_state.caller):
        if st.button("Mark lapsed gyms inactive"):
            if run_action(svc.expire_lapsed, lambda expired: f"{len(expired)} gym(s) marked inactive."):
                st.rerun()


def gyms_page(svc: BillingService):
    st.header("🏢 Gyms")

    plans = plan_options(svc.catalog.list_plans())
    agents = agent_options(svc.policy.list_agents())

    with st.sidebar:
        st.subheader("Filters")
        status_filter = st.selectbox("Status", ["All", "pending", "active", "inactive"])

    gyms = svc.list_gyms(status=None if status_filter == "All" else status_filter)
    st.dataframe(utils.records_to_frame(gyms), use_container_width=True, hide_index=True)

    caller = st.session_state.caller
    if not plans:
        st.info("No plans yet. Add a plan first.")
        return

    st.divider()
    if auth.can_mutate_billing(caller):
        st.subheader("➕ New gym (pending until first payment)")
        c1, c2, c3, c4 = st.columns(4)
        name = c1.text_input("Gym name")
        owner = c2.text_input("Owner name")
        plan_label = c3.selectbox("Plan", list(plans.keys()))
        agent_label = c4.selectbox("Agent", list(agents.keys()))
        if st.button("Create gym", type="primary"):
            if run_action(lambda: svc.create_pending(name, owner, plans[plan_label], agents[agent_label]),
                          "Gym created."):
                st.rerun()

    if not gyms:
        return

    st.divider()
    options = {f"{g.name} ({g.status}) - ID {g.id}": g.id for g in gyms}
    gym_id = options[st.selectbox("Gym", list(options.keys()))]
    gym = svc.get_gym(gym_id)
    st.write(
        f"Status: **{gym.status}** | Coverage: **{gym.start_date or '-'} → {gym.end_date or '-'}** "
        f"| Plan ID: **{gym.plan_id}** | Agent ID: **{gym.agent_id or 'direct'}**"
    )

    if auth.can_mutate_billing(caller, gym_id):
        st.subheader("💳 Record payment")
        c1, c2, c3 = st.columns(3)
        labels = list(plans.keys())
        current = next((i for i, pid in enumerate(plans.values()) if pid == gym.plan_id), 0)
        plan_label = c1.selectbox("Paid plan", labels, index=current, key="pay_plan")
        plan = svc.catalog.get_plan(plans[plan_label])
        amount = c2.text_input("Amount", value=str(plan.price))
        method = c3.selectbox("Method", list(config.PAYMENT_METHODS))
        c4, c5 = st.columns(2)
        ref = c4.text_input("Transaction reference (optional)")
        notes = c5.text_input("Notes")
        if st.button("Record payment", type="primary"):
            if run_action(
                lambda: svc.apply_payment(gym_id, plan.id, amount.strip(), method, ref, notes),
                "Payment recorded.",
            ):
                st.rerun()

        st.subheader("⏸️ Pause / resume")
        if gym.status == ACTIVE and st.button("Pause gym"):
            if run_action(lambda: svc.set_status(gym_id, INACTIVE), "Gym paused."):
                st.rerun()
        if gym.status == INACTIVE and st.button("Resume gym"):
            if run_action(lambda: svc.set_status(gym_id, ACTIVE), "Gym resumed."):
                st.rerun()

    if auth.can_mutate_billing(caller):
        st.subheader("✏️ Reassign agent")
        agent_label = st.selectbox("New agent", list(agents.keys()), key="reassign_agent")
        if st.button("Save agent"):
            if run_action(lambda: svc.update_gym(gym_id, agent_id=agents[agent_label]), "Agent updated."):
                st.rerun()

    st.subheader("Payment history")
    history = svc.payment_history(gym_id)
    if history:
        st.dataframe(utils.records_to_frame(history), use_container_width=True, hide_index=True)
    else:
        st.caption("No payments for this gym yet.")


def plans_page(svc: BillingService):
    st.header("📦 Plans")

    plans = svc.catalog.list_plans()
    st.dataframe(utils.records_to_frame(plans), use_container_width=True, hide_index=True)
    if not auth.can_mutate_billing(st.session_state.caller):
        return

    st.subheader("➕ Add plan")
    c1, c2, c3, c4, c5 = st.columns(5)
    name = c1.text_input("Name")
    price = c2.text_input("Price", value="100000")
    duration = c3.number_input("Duration", min_value=1, value=30, step=1)
    unit = c4.selectbox("Unit", list(DURATION_UNITS))
    limit = c5.text_input("Gym limit (blank = unlimited)")
    if st.button("Save plan", type="primary"):
        if run_action(lambda: svc.catalog.create_plan(name, price, int(duration), unit, limit), "Plan added."):
            st.rerun()

    if plans:
        st.subheader("✏️ Edit price")
        options = {f"{p.name} - ID {p.id}": p for p in plans}
        plan = options[st.selectbox("Plan", list(options.keys()))]
        new_price = st.text_input("New price", value=str(plan.price))
        st.caption("Recorded payments keep their original amount.")
        if st.button("Update plan"):
            if run_action(lambda: svc.catalog.update_plan(plan.id, price=new_price), "Plan updated."):
                st.rerun()


def agents_page(svc: BillingService):
    st.header("🤝 Agents")

    caller = st.session_state.caller
    agents = svc.policy.list_agents()
    if caller.role == "agent":
        agents = [a for a in agents if a.id == caller.agent_id]

    for agent in agents:
        s = svc.agent_summary(agent.id)
        with st.expander(f"{agent.name} - {agent.commission_rate}%"):
            c1, c2, c3, c4 = st.columns(4)
            c1.metric("Active gyms", s.active_gyms)
            c2.metric("Attributed MRR", money(s.attributed_mrr))
            c3.metric("Lifetime earned", money(s.lifetime_earned))
            c4.metric("Pending payout", money(s.pending_balance))
            history = svc.commission_history(agent.id)
            if history:
                st.dataframe(utils.records_to_frame(history), use_container_width=True, hide_index=True)
            if auth.can_mutate_billing(caller) and st.button("Pay out pending", key=f"payout_{agent.id}"):
                if run_action(lambda: svc.payout_agent(agent.id), payout_message):
                    st.rerun()

    if not auth.can_mutate_billing(caller):
        return

    st.divider()
    st.subheader("➕ Add agent")
    c1, c2, c3, c4 = st.columns(4)
    name = c1.text_input("Name")
    email = c2.text_input("Email")
    phone = c3.text_input("Phone")
    rate = c4.number_input("Commission %", min_value=0.0, max_value=100.0, value=20.0)
    if st.button("Save agent", type="primary"):
        if run_action(lambda: svc.policy.create_agent(name, email, phone, Decimal(str(rate))), "Agent added."):
            st.rerun()


def reports_page(svc: BillingService):
    st.header("🧾 Reports")

    for kind in ("gyms", "payments", "commissions"):
        st.download_button(
            f"Download {kind}.csv",
            data=svc.export_csv(kind),
            file_name=f"{kind}.csv",
            mime="text/csv",
        )

    st.divider()

    st.subheader("Revenue summary by month")
    st.dataframe(svc.revenue_by_month(), use_container_width=True, hide_index=True)


def settings_page(svc: BillingService):
    st.header("⚙️ Settings")

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        if p1 != p2:
            st.error("Passwords do not match.")
        elif run_action(lambda: auth.change_password(svc.db, st.session_state.caller.username, p1),
                        "Password updated."):
            st.rerun()

    if not auth.can_mutate_billing(st.session_state.caller):
        return

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert 2 plans, 1 agent and 3 gyms for testing (adds new rows each run).")
    if st.button("Insert sample data"):
        if run_action(svc.insert_sample_data, "Sample data inserted."):
            st.rerun()


PAGES = {
    "Dashboard": dashboard_page,
    "Gyms": gyms_page,
    "Plans": plans_page,
    "Agents": agents_page,
    "Reports": reports_page,
    "Settings": settings_page,
}


def main_app(svc: BillingService):
    caller = st.session_state.caller
    st.sidebar.title("🏋️ Gym SaaS Billing")
    st.sidebar.caption(f"Logged in as: {caller.username} ({caller.role})")

    pages = list(PAGES.keys())
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    show_flash()
    PAGES[st.session_state.page](svc)


# --------- App entry ---------

def run():
    svc = get_service()
    require_login()

    if st.session_state.caller is None:
        login_screen(svc)
        return

    # Force password change on first login after DB creation
    if svc.db.is_force_password_change():
        force_change_password_screen(svc)
        return

    main_app(svc)


if __name__ == "__main__":
    run()
