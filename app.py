"""
app.py
Streamlit Gym Dashboard (admin + member views).
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from dataclasses import asdict

import pandas as pd
import streamlit as st

import audit
import auth
import config
import db
import utils
from connectivity import ConnectivityGuard
from errors import GymError, user_message
from models import FEE_PACKAGES, ROLES
from notifications import Notifier
from repositories import (
    BillRepository,
    DietRepository,
    MemberRepository,
    NotificationRepository,
    SupplementRepository,
)

st.set_page_config(page_title="Gym Dashboard", layout="wide")

logger = logging.getLogger(__name__)

members = MemberRepository()
bills = BillRepository(members)
notes = NotificationRepository()
supplements = SupplementRepository()
diets = DietRepository(members)
notifier = Notifier(members, notes)
guard = ConnectivityGuard()


def init_once():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    db.init_db()


def require_login():
    if "auth" not in st.session_state:
        st.session_state.auth = auth.AuthClient()
    if "session" not in st.session_state:
        st.session_state.session = None


def flash(message: str):
    # shown after the rerun that follows a successful write
    st.session_state.flash = message


def show_flash():
    msg = st.session_state.pop("flash", None)
    if msg:
        st.success(msg)


def guarded(fn, *args, success: str | None = None, **kwargs):
    """
    Connectivity check, then the write. Errors are shown and the action is not retried.
    Returns the result (True for actions that return nothing), or None when the action failed.
    """
    try:
        with st.spinner("Working..."):
            result = guard.run(fn, *args, **kwargs)
    except GymError as e:
        logger.info("Action %s failed: %s", getattr(fn, "__name__", fn), e)
        st.error(user_message(e))
        return None
    if success:
        flash(success)
    return True if result is None else result


def frame(records, columns: list[str]) -> pd.DataFrame:
    if not records:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame([asdict(r) for r in records])
    return df[columns]


def logout():
    auth.logout(st.session_state.auth, st.session_state.session)
    st.session_state.session = None
    st.session_state.pop("member_login_logged", None)


def login_screen():
    st.title("🔐 Gym Dashboard Login")

    col1, col2 = st.columns([1, 1])
    with col1:
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        role = st.selectbox("Register as", ROLES, index=ROLES.index("member"))

        b1, b2 = st.columns(2)
        with b1:
            if st.button("Login", type="primary"):
                try:
                    st.session_state.session = auth.login(st.session_state.auth, email, password)
                except GymError as e:
                    st.error(user_message(e))
                else:
                    st.rerun()
        with b2:
            if st.button("Register"):
                try:
                    auth.register(st.session_state.auth, email, password, role)
                except GymError as e:
                    st.error(user_message(e))
                else:
                    st.success("Registration successful! Please log in.")

    with col2:
        st.info(
            "New here? Enter an email and a password (at least 6 characters) "
            "and press **Register**, then log in."
        )


# ---------- Admin pages ----------

def members_page():
    st.header("👥 Members")
    session = st.session_state.session

    st.subheader("➕ Add Member")
    c1, c2, c3 = st.columns(3)
    with c1:
        name = st.text_input("Name")
    with c2:
        email = st.text_input("Email", key="m_email")
    with c3:
        fee_package = st.selectbox("Fee package", [""] + FEE_PACKAGES)

    if st.button("Add member", type="primary"):
        errors = utils.validate_member_inputs(name, email)
        if errors:
            for e in errors:
                st.error(e)
        elif guarded(members.create, session, name, email, fee_package, success="Member added successfully!"):
            st.rerun()

    st.divider()

    rows = members.list()
    st.dataframe(
        frame(rows, ["id", "name", "email", "fee_package", "status", "created_at"]),
        use_container_width=True,
        hide_index=True,
    )
    if not rows:
        st.caption("No members found.")
        return

    options = {f"{m.name} ({m.email}) - ID {m.id}": m for m in rows}
    chosen = options[st.selectbox("Member", list(options.keys()))]

    c1, c2 = st.columns(2)
    with c1:
        new_name = st.text_input("New name", value=chosen.name, key=f"rename_{chosen.id}")
        if st.button("Rename"):
            if guarded(members.rename, session, chosen.id, new_name, success="Member updated successfully!"):
                st.rerun()
    with c2:
        confirm = st.checkbox("Confirm delete", value=False, key="del_member")
        if st.button("Delete member", disabled=not confirm):
            if guarded(members.delete, session, chosen.id, success="Member deleted successfully!"):
                st.rerun()


def bills_page():
    st.header("💳 Bills")
    session = st.session_state.session

    c1, c2, c3 = st.columns(3)
    with c1:
        email = st.text_input("Member email", key="bill_email")
    with c2:
        amount = st.text_input("Amount", value="")
    with c3:
        month = st.text_input("Month", value=utils.today_iso()[:7])

    if st.button("Create bill", type="primary"):
        errors = utils.validate_bill_inputs(email, amount, month)
        if errors:
            for e in errors:
                st.error(e)
        elif guarded(bills.create, session, email, amount, month, success="Bill created successfully!"):
            st.rerun()

    st.divider()

    rows = bills.list()
    st.dataframe(
        frame(rows, ["id", "email", "amount", "month", "paid", "created_at", "paid_at"]),
        use_container_width=True,
        hide_index=True,
    )
    if not rows:
        st.caption("No bills found.")
        return

    options = {f"{b.email} {utils.format_amount(b.amount)} ({b.month}) - ID {b.id}": b for b in rows}
    chosen = options[st.selectbox("Bill", list(options.keys()))]

    c1, c2 = st.columns(2)
    with c1:
        if st.button("Mark paid", disabled=chosen.paid):
            if guarded(bills.mark_paid, session, chosen.id, success="Bill marked as paid successfully!"):
                st.rerun()
    with c2:
        confirm = st.checkbox("Confirm delete", value=False, key="del_bill")
        if st.button("Delete bill", disabled=not confirm):
            if guarded(bills.delete, session, chosen.id, success="Bill deleted successfully!"):
                st.rerun()


def report_batch(result, what: str):
    if result is None:
        return
    if result.ok:
        flash(f"{what} sent to {len(result.sent)} member(s)!")
        st.rerun()
    # partial or failed: stay on the page so the outcome is visible
    st.error(
        f"{what} {result.status}: {len(result.sent)} sent, {len(result.failed)} failed "
        f"({', '.join(o.email for o in result.failed)})."
    )


def notifications_page():
    st.header("🔔 Notifications")
    session = st.session_state.session

    email = st.text_input("Member email (leave empty to notify all members)", key="notify_email")
    message = st.text_area("Message")

    c1, c2 = st.columns(2)
    with c1:
        if st.button("Send notification", type="primary"):
            report_batch(guarded(notifier.send, session, message, email), "Notification")
    with c2:
        if st.button("Send monthly fee reminders"):
            report_batch(guarded(notifier.monthly_reminders, session), "Monthly fee reminder")

    st.divider()

    rows = notes.recent(config.NOTIFICATION_PAGE_LIMIT)
    st.dataframe(frame(rows, ["id", "email", "message", "ts", "read"]), use_container_width=True, hide_index=True)
    if not rows:
        return

    options = {f"{n.email}: {n.message[:40]} - ID {n.id}": n for n in rows}
    chosen = options[st.selectbox("Notification", list(options.keys()))]
    if st.button("Delete notification"):
        if guarded(notes.delete, session, chosen.id, success="Notification deleted."):
            st.rerun()


def supplements_page():
    st.header("💊 Supplements")
    session = st.session_state.session

    c1, c2 = st.columns(2)
    with c1:
        name = st.text_input("Supplement name")
    with c2:
        price = st.text_input("Price")

    if st.button("Add supplement", type="primary"):
        errors = utils.validate_supplement_inputs(name, price)
        if errors:
            for e in errors:
                st.error(e)
        elif guarded(supplements.create, session, name, price, success="Supplement added successfully!"):
            st.rerun()

    st.divider()

    rows = supplements.list()
    st.dataframe(frame(rows, ["id", "name", "price", "created_at"]), use_container_width=True, hide_index=True)
    if not rows:
        st.caption("No supplements found.")
        return

    options = {f"{s.name} - ID {s.id}": s for s in rows}
    chosen = options[st.selectbox("Supplement", list(options.keys()))]
    confirm = st.checkbox("Confirm delete", value=False, key="del_supp")
    if st.button("Delete supplement", disabled=not confirm):
        if guarded(supplements.delete, session, chosen.id, success="Supplement deleted successfully!"):
            st.rerun()


def diets_page():
    st.header("🥗 Diet plans")
    session = st.session_state.session

    email = st.text_input("Member email", key="diet_email")
    plan = st.text_area("Plan")

    another = False
    if email.strip() and diets.has_plan(email):
        st.warning("Member already has a diet plan.")
        another = st.checkbox("Add another plan anyway", value=False)

    if st.button("Assign plan", type="primary"):
        if guarded(diets.create, session, email, plan, allow_additional=another,
                   success="Diet plan added successfully!"):
            st.rerun()

    st.divider()

    rows = diets.list()
    st.dataframe(frame(rows, ["id", "email", "plan", "assigned_at"]), use_container_width=True, hide_index=True)
    if not rows:
        st.caption("No diet plans found.")
        return

    options = {f"{d.email} ({d.assigned_at}) - ID {d.id}": d for d in rows}
    chosen = options[st.selectbox("Diet plan", list(options.keys()))]
    confirm = st.checkbox("Confirm delete", value=False, key="del_diet")
    if st.button("Delete plan", disabled=not confirm):
        if guarded(diets.delete, session, chosen.id, success="Diet plan deleted successfully!"):
            st.rerun()


def export_page():
    st.header("🧾 Export")

    for entity, repo, to_bytes in (
        ("members", members, utils.members_to_csv_bytes),
        ("bills", bills, utils.bills_to_csv_bytes),
    ):
        st.subheader(f"Export {entity} to CSV")
        try:
            data = to_bytes(repo.list())
        except GymError as e:
            st.caption(user_message(e))
            continue
        st.download_button(
            f"Download {entity}.csv",
            data=data,
            file_name=utils.export_filename(entity),
            mime="text/csv",
        )


def logs_page():
    st.header("📜 Activity log")
    entries = audit.recent_logs(config.LOG_PAGE_LIMIT)
    if not entries:
        st.caption("No activity yet.")
        return
    df = pd.DataFrame(
        [{"ts": e.ts, "action": e.action, "uid": e.uid, "details": e.details} for e in entries]
    )
    df["details"] = df["details"].astype(str)
    st.dataframe(df, use_container_width=True, hide_index=True)


def admin_app():
    st.sidebar.title("🏋️ Gym Admin")
    st.sidebar.caption(f"Logged in as: {st.session_state.session.email}")

    pages = {
        "Members": members_page,
        "Bills": bills_page,
        "Notifications": notifications_page,
        "Supplements": supplements_page,
        "Diet plans": diets_page,
        "Export": export_page,
        "Logs": logs_page,
    }
    page = st.sidebar.radio("Navigate", list(pages.keys()))

    if st.sidebar.button("Refresh"):
        st.rerun()
    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    show_flash()
    pages[page]()


# ---------- Member view ----------

def member_app():
    session = st.session_state.session

    st.sidebar.title("🏋️ My Gym")
    st.sidebar.caption(f"Logged in as: {session.email}")
    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    if not st.session_state.get("member_login_logged"):
        audit.write_log(session, "member_login", {"email": session.email})
        st.session_state.member_login_logged = True

    st.header("👤 My details")
    st.write(f"**Email:** {session.email}  \n**Status:** Active")

    st.subheader("My bills")
    my_bills = bills.for_email(session.email)
    if my_bills:
        st.dataframe(frame(my_bills, ["amount", "month", "paid", "created_at"]), use_container_width=True, hide_index=True)
        receipts = {f"{b.month} - {utils.format_amount(b.amount)} - ID {b.id}": b.id for b in my_bills}
        picked = st.selectbox("View receipt", list(receipts.keys()))
        bill = bills.get(receipts[picked])
        if bill:
            st.info(
                "Receipt Details:\n\n"
                f"Amount: {utils.format_amount(bill.amount)}  \nMonth: {bill.month}  \n"
                f"Status: {'Paid' if bill.paid else 'Unpaid'}  \nDate: {bill.created_at[:10]}"
            )
    else:
        st.caption("No bills found.")

    st.subheader("My notifications")
    my_notes = notes.for_email(session.email)
    if my_notes:
        st.dataframe(frame(my_notes, ["message", "ts"]), use_container_width=True, hide_index=True)
    else:
        st.caption("No notifications found.")

    st.subheader("Supplements")
    catalogue = supplements.catalogue()
    if catalogue:
        st.dataframe(frame(catalogue, ["name", "price"]), use_container_width=True, hide_index=True)
    else:
        st.caption("No supplements available.")

    st.subheader("My diet plan")
    my_diets = diets.for_email(session.email)
    if my_diets:
        for d in my_diets:
            st.markdown(f"**Assigned {d.assigned_at[:10]}**\n\n{d.plan}")
    else:
        st.caption("No diet plan assigned.")

    st.divider()
    st.subheader("🔎 Search members")
    query = st.text_input("Name or email")
    if st.button("Search"):
        try:
            found = members.search(query)
        except GymError as e:
            st.error(user_message(e))
            return
        audit.write_log(session, "member_search", {"email": session.email, "query": query.strip().lower(),
                                                   "results": len(found)})
        if found:
            st.success(f"Found {len(found)} matching record(s)")
            st.dataframe(frame(found, ["name", "email", "fee_package"]), use_container_width=True, hide_index=True)
        else:
            st.caption("No matching records found.")


# --------- App entry ---------

def run():
    init_once()
    require_login()

    if st.session_state.session is None:
        login_screen()
        return

    if st.session_state.session.is_admin:
        admin_app()
    else:
        member_app()


if __name__ == "__main__":
    run()
