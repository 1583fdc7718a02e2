"""
app.py
Streamlit member check-in console (single operator).
Run: streamlit run app.py
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from datetime import date, timedelta

import streamlit as st

import auth
import db
import utils
from config import configure_logging, load_settings
from errors import DeviceUnavailable, MemberStoreError, StorageError
from media import Camera
from members import make_store, make_supabase_client
from models import MembershipStatus, NoticeKind, ScanStatus
from scanner import ControllerRegistry, ScanController
from storage import make_storage

st.set_page_config(page_title="Member Check-in", layout="wide")

SESSION_STALE_AFTER = 15.0

STATUS_COLORS = {
    MembershipStatus.CURRENT: "green",
    MembershipStatus.EXPIRING: "orange",
    MembershipStatus.EXPIRED: "red",
}

SCAN_HINTS = {
    ScanStatus.IDLE: "Ready to scan. Press the button to start.",
    ScanStatus.SCANNING: "Hold still, scanning...",
    ScanStatus.SUCCESS: "Success! Verified.",
    ScanStatus.ERROR: "Could not identify the member. Try again.",
    ScanStatus.VERIFIED: "Scan complete. Ready for the next member.",
}

SCAN_BUTTON_LABELS = {
    ScanStatus.IDLE: "Start fingerprint scan",
    ScanStatus.SCANNING: "Scanning...",
    ScanStatus.SUCCESS: "Verified",
    ScanStatus.ERROR: "Retry",
    ScanStatus.VERIFIED: "Scan next",
}

ERROR_NOTICES = {
    NoticeKind.FETCH_FAILURE,
    NoticeKind.EMPTY_SET,
    NoticeKind.CAMERA_DENIED,
    NoticeKind.CAMERA_UNAVAILABLE,
}


# ---------- Process-wide resources ----------

@st.cache_resource
def get_settings():
    settings = load_settings()
    configure_logging(settings)
    return settings


@st.cache_resource
def init_once():
    # Operator accounts always live in the local SQLite file
    db.configure(get_settings().db_file)
    auth.bootstrap()


@st.cache_resource
def get_supabase_client():
    return make_supabase_client(get_settings())


def _client_or_none():
    return get_supabase_client() if get_settings().member_backend == "supabase" else None


@st.cache_resource
def get_store():
    return make_store(get_settings(), _client_or_none())


@st.cache_resource
def get_storage():
    return make_storage(get_settings(), _client_or_none())


@st.cache_resource
def get_loop() -> asyncio.AbstractEventLoop:
    # Scan timers keep running between Streamlit reruns on this loop
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, name="scan-loop", daemon=True).start()
    return loop


@st.cache_resource
def get_registry() -> ControllerRegistry:
    # Sessions that stop sending heartbeats (closed tab) get their controller closed
    registry = ControllerRegistry(stale_after=SESSION_STALE_AFTER)
    asyncio.run_coroutine_threadsafe(registry.watch(), get_loop())
    return registry


def run_on_loop(coro, timeout: float = 30.0):
    return asyncio.run_coroutine_threadsafe(coro, get_loop()).result(timeout)


async def _call(fn):
    return fn()


class SessionNotifier:
    """Collects notices from the scan loop until the page shows them."""

    def __init__(self):
        self._notices = deque(maxlen=20)
        self._lock = threading.Lock()

    def notify(self, kind: NoticeKind, message: str) -> None:
        with self._lock:
            self._notices.append((kind, message))

    def drain(self) -> list[tuple[NoticeKind, str]]:
        with self._lock:
            items = list(self._notices)
            self._notices.clear()
        return items


def get_controller() -> ScanController:
    controller = st.session_state.get("scan_controller")
    if controller is None or controller.closed:
        settings = get_settings()
        notifier = SessionNotifier()
        st.session_state.scan_notifier = notifier
        st.session_state.scan_controller = ScanController(
            get_store(),
            notifier,
            Camera(settings.camera_index),
            verify_delay=settings.verify_delay,
            auto_scan_interval=settings.auto_scan_interval,
        )
    get_registry().touch(st.session_state.scan_controller)
    return st.session_state.scan_controller


def close_controller():
    controller = st.session_state.pop("scan_controller", None)
    if controller is not None:
        get_registry().discard(controller)
        run_on_loop(_call(controller.close))


def show_notices():
    notifier = st.session_state.get("scan_notifier")
    if notifier is None:
        return
    for kind, message in notifier.drain():
        st.toast(message, icon="⚠️" if kind in ERROR_NOTICES else "✅")


# ---------- Login ----------

def require_login():
    if "logged_in" not in st.session_state:
        st.session_state.logged_in = False
    if "username" not in st.session_state:
        st.session_state.username = None


def logout():
    close_controller()
    st.session_state.logged_in = False
    st.session_state.username = None
    st.success("Logged out.")


def login_screen():
    st.title("🔐 Operator Login")

    col1, col2 = st.columns([1, 1])
    with col1:
        username = st.text_input("Username", value=auth.DEFAULT_USERNAME)
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            if auth.login(username.strip(), password):
                st.session_state.logged_in = True
                st.session_state.username = username.strip()
                st.rerun()
            else:
                st.error("Invalid username or password.")

    with col2:
        st.info(
            "First run creates a default operator:\n\n"
            f"- username: **{auth.DEFAULT_USERNAME}**\n"
            f"- password: **{auth.DEFAULT_PASSWORD}**\n\n"
            "You will be forced to change it on first login."
        )


def password_form(key: str) -> bool:
    p1 = st.text_input("New password", type="password", key=f"{key}_p1")
    p2 = st.text_input("Confirm new password", type="password", key=f"{key}_p2")
    if st.button("Update password", type="primary", key=f"{key}_btn"):
        errors = auth.validate_new_password(p1, p2)
        for e in errors:
            st.error(e)
        if not errors:
            auth.change_password(st.session_state.username, p1)
            st.success("Password updated.")
            return True
    return False


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")
    st.warning("You must change the default password before using the console.")
    if password_form("force"):
        st.rerun()


# ---------- Check-in ----------

def member_card(snap):
    st.subheader("Member information")
    member = snap.member
    if member is None or snap.membership_status is None:
        st.markdown(":gray[━━━━━━━━━━━━━━━━━━━━]")
        st.markdown("## 👤")
        st.caption("Waiting for identification... Scan a face or fingerprint.")
        return

    color = STATUS_COLORS[snap.membership_status]
    st.markdown(f":{color}[━━━━━━━━━━━━━━━━━━━━]")
    if member.portrait_url:
        st.image(member.portrait_url, width=180)
    else:
        st.markdown(f"## {member.full_name[:1].upper()}")
    st.markdown(f"### {member.full_name}")
    st.markdown(f"🗓️ :{color}[{utils.status_message(member.end_date, date.today())}]")


def camera_panel(controller: ScanController, snap):
    st.subheader("📷 Camera scanner")
    label = "Stop auto-scan" if snap.auto_scan_enabled else "Start auto-scan"
    if st.button(label, key="auto_scan_btn"):
        run_on_loop(controller.toggle_auto_scan())
        st.rerun(scope="fragment")

    try:
        # the camera is only touched on the scan loop thread
        frame = run_on_loop(_call(controller.capture_still))
    except DeviceUnavailable as e:
        st.warning(str(e))
        return
    if frame is None:
        st.caption("Camera is off. Start auto-scan to identify members continuously.")
        return
    st.image(frame, width="stretch")


def fingerprint_panel(controller: ScanController, snap):
    st.subheader("🖐️ Fingerprint scanner")
    st.caption(SCAN_HINTS[snap.status])
    busy = snap.status in (ScanStatus.SCANNING, ScanStatus.SUCCESS)
    if st.button(
        SCAN_BUTTON_LABELS[snap.status],
        key="scan_btn",
        type="primary",
        disabled=busy or snap.auto_scan_enabled,
        width="stretch",
    ):
        if snap.status in (ScanStatus.IDLE, ScanStatus.ERROR):
            with st.spinner("Scanning..."):
                run_on_loop(controller.trigger_scan())
        else:
            run_on_loop(_call(controller.reset))
        st.rerun(scope="fragment")


@st.fragment(run_every=timedelta(seconds=1))
def scan_panel():
    controller = get_controller()
    snap = controller.snapshot()
    show_notices()

    left, right = st.columns(2)
    with left:
        camera_panel(controller, snap)
        st.divider()
        fingerprint_panel(controller, snap)
    with right:
        member_card(snap)


def checkin_page():
    st.header("🛂 Check-in")
    scan_panel()


# ---------- Members ----------

def portrait_input(key: str):
    """Returns (bytes, content_type) or None."""
    source = st.radio("Portrait", ["None", "Upload", "Take photo"], horizontal=True, key=f"{key}_src")
    if source == "Upload":
        f = st.file_uploader("Image file", type=["png", "jpg", "jpeg"], key=f"{key}_upload")
    elif source == "Take photo":
        f = st.camera_input("Take a photo", key=f"{key}_camera")
    else:
        f = None
    if f is None:
        return None
    st.image(f, width=160)
    return f.getvalue(), (f.type or "image/png")


def member_form(existing=None):
    key = f"edit_{existing.id}" if existing else "new"
    if existing:
        st.subheader(f"✏️ Edit Member ({existing.full_name})")
    else:
        st.subheader("➕ Register Member")

    col1, col2 = st.columns(2)
    with col1:
        full_name = st.text_input("Full name", value=(existing.full_name if existing else ""), key=f"{key}_name")
        start_date = st.date_input(
            "Membership start date", value=(existing.start_date if existing else date.today()), key=f"{key}_start"
        )
        end_date = st.date_input(
            "Membership end date",
            value=(existing.end_date if existing else date.today() + timedelta(days=30)),
            key=f"{key}_end",
        )
    with col2:
        if existing and existing.portrait_url:
            st.image(existing.portrait_url, width=120, caption="Current portrait")
        portrait = portrait_input(key)

    errors = utils.validate_member_inputs(full_name, start_date, end_date)
    for e in errors:
        st.error(e)

    if not st.button("Save", type="primary", disabled=bool(errors), key=f"{key}_save"):
        return

    store = get_store()
    try:
        portrait_url = get_storage().save(*portrait) if portrait else None
        if existing:
            store.update_member(existing.id, full_name, start_date, end_date, portrait_url)
            st.session_state.edit_member_id = None
            st.success("Member updated.")
        else:
            store.create_member(full_name, start_date, end_date, portrait_url)
            st.success(f"Welcome, {full_name.strip()}! Registration complete.")
    except (MemberStoreError, StorageError) as e:
        st.error(f"Could not save member: {e}")
        return
    st.rerun()


def members_page():
    st.header("👥 Members")

    store = get_store()
    try:
        members = store.fetch_all_members()
    except MemberStoreError as e:
        st.error(f"Could not load members: {e}")
        return

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name)")
        status_filter = st.selectbox("Status", ["All"] + [s.value for s in MembershipStatus])

    df = utils.members_to_dataframe(members)
    if search.strip():
        df = df[df["full_name"].str.contains(search.strip(), case=False, regex=False)]
    if status_filter != "All":
        df = df[df["status"] == status_filter]
    st.dataframe(df.drop(columns=["portrait_url"]), width="stretch", hide_index=True)

    st.divider()

    by_id = {m.id: m for m in members}
    visible = set(df["id"])
    labels = {f"{m.full_name} - {m.id[:8]}": m.id for m in members if m.id in visible}

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        selected = st.selectbox("Member", options=["(none)"] + list(labels.keys()))

    with colB:
        if selected != "(none)":
            member_id = labels[selected]
            st.subheader("Member actions")
            c1, c2 = st.columns(2)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = member_id
                    st.rerun()
            with c2:
                delete_confirm = st.checkbox("Confirm delete", value=False, key=f"del_confirm_{member_id}")
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    try:
                        store.delete_member(member_id)
                    except MemberStoreError as e:
                        st.error(f"Could not delete member: {e}")
                    else:
                        st.success(f"{by_id[member_id].full_name} was deleted.")
                        st.rerun()

    st.divider()

    edit_id = st.session_state.get("edit_member_id")
    if edit_id and edit_id in by_id:
        member_form(existing=by_id[edit_id])
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()


def register_page():
    st.header("📝 Register")
    member_form(existing=None)


def settings_page():
    st.header("⚙️ Settings")

    st.subheader("Change password")
    password_form("settings")

    st.divider()

    st.subheader("Demo data")
    st.caption("Insert 3 demo members (current, expiring, expired). Adds new rows each run.")
    if st.button("Insert demo members"):
        try:
            utils.insert_sample_data(get_store())
        except MemberStoreError as e:
            st.error(f"Could not insert demo members: {e}")
        else:
            st.success("Demo members inserted.")
            st.rerun()


def main_app():
    st.sidebar.title("🛂 Check-in Console")
    st.sidebar.caption(f"Logged in as: {st.session_state.username}")

    pages = {
        "Check-in": checkin_page,
        "Members": members_page,
        "Register": register_page,
        "Settings": settings_page,
    }
    names = list(pages)
    if "page" not in st.session_state:
        st.session_state.page = names[0]
    st.session_state.page = st.sidebar.radio("Navigate", names, index=names.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    if st.session_state.page != "Check-in":
        # Leaving the scan page tears the scan session down
        close_controller()

    pages[st.session_state.page]()


# --------- App entry ---------

def run():
    init_once()
    require_login()

    if not st.session_state.logged_in:
        login_screen()
        return

    # Force password change on first login after DB creation
    if db.is_force_password_change():
        force_change_password_screen()
        return

    main_app()


if __name__ == "__main__":
    run()
