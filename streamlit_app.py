import streamlit as st
import requests
import pandas as pd
from datetime import datetime
import plotly.express as px
import logging

import config
from client import ApiError, AttendanceClient
from landing_page import landing_page

# Set up logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


def init_session_state():
    if 'token' not in st.session_state:
        st.session_state.token = None
    if 'user' not in st.session_state:
        st.session_state.user = None
    if 'page' not in st.session_state:
        st.session_state.page = "landing"
    if 'classroom_id' not in st.session_state:
        st.session_state.classroom_id = None


def get_client():
    return AttendanceClient(config.API_URL, token=st.session_state.token)


def call_api(action, *args, **kwargs):
    """Run a client call and turn failures into Streamlit error messages."""
    try:
        return action(*args, **kwargs), True
    except ApiError as e:
        st.error(e.message)
    except requests.RequestException as e:
        logger.error(f"Request error: {str(e)}", exc_info=True)
        st.error(f"An error occurred while connecting to the server: {str(e)}")
    return None, False


def format_time(value):
    if not value:
        return "-"
    return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M:%S")


def logout():
    for key in ['token', 'user', 'classroom_id']:
        if key in st.session_state:
            del st.session_state[key]
    st.session_state.page = "landing"
    st.rerun()


# ----------------------
# Login / registration
# ----------------------

def login(email, password):
    client = get_client()
    data, ok = call_api(client.login, email, password)
    if not ok:
        logger.warning(f"Login failed for user {email}")
        return False
    st.session_state.token = data["token"]
    st.session_state.user = data["user"]
    logger.info(f"Login successful for user: {email}")
    return True


def display_login_register():
    st.title("Classroom Attendance")

    tab1, tab2 = st.tabs(["Login", "Register"])

    with tab1:
        with st.form("login_form"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submit = st.form_submit_button("Login")

            if submit:
                if not email or not password:
                    st.error("Please fill in all fields")
                elif login(email, password):
                    st.session_state.page = "dashboard"
                    st.rerun()

    with tab2:
        with st.form("register_form"):
            email = st.text_input("Email", key="register_email")
            password = st.text_input("Password", type="password", key="register_password")
            role = st.selectbox("Role", ["student", "admin"])
            student_id = st.text_input("Student ID (optional, students only)")
            enrollment_date = st.date_input("Enrollment date (students only)", value=None)
            submit = st.form_submit_button("Create Account")

            if submit:
                if not email or not password:
                    st.error("Please fill in all fields")
                    return
                client = get_client()
                data, ok = call_api(
                    client.register,
                    email,
                    password,
                    role,
                    student_id=student_id or None,
                    enrollment_date=enrollment_date if role == "student" else None,
                )
                if ok:
                    st.session_state.token = data["token"]
                    st.session_state.user = data["user"]
                    st.session_state.page = "dashboard"
                    st.rerun()


# ----------------------
# Dashboard
# ----------------------

def open_classroom(classroom_id):
    st.session_state.classroom_id = classroom_id
    st.session_state.page = "classroom"
    st.rerun()


def display_create_classroom():
    with st.expander("Create Classroom"):
        with st.form("create_classroom_form", clear_on_submit=True):
            name = st.text_input("Name")
            description = st.text_area("Description")
            submit = st.form_submit_button("Create")

            if submit:
                if not name.strip():
                    st.error("Classroom name is required")
                    return
                classroom, ok = call_api(get_client().create_classroom, name, description or None)
                if ok:
                    st.success(f"Classroom created. Join code: {classroom['joinCode']}")


def display_join_classroom():
    with st.expander("Join Classroom"):
        with st.form("join_classroom_form", clear_on_submit=True):
            join_code = st.text_input("Join code", max_chars=config.JOIN_CODE_LENGTH)
            submit = st.form_submit_button("Join")

            if submit and join_code:
                classroom, ok = call_api(get_client().join_classroom, join_code.strip())
                if ok:
                    st.success(f"Joined {classroom['name']}")


def display_dashboard():
    user = st.session_state.user
    st.title("My Classrooms")

    if user["role"] == "admin":
        display_create_classroom()
    else:
        display_join_classroom()

    classrooms, ok = call_api(get_client().list_classrooms)
    if not ok:
        return
    if not classrooms:
        st.info("No classrooms yet")
        return

    for classroom in classrooms:
        with st.container(border=True):
            col1, col2 = st.columns([4, 1])
            with col1:
                st.subheader(classroom["name"])
                if classroom.get("description"):
                    st.write(classroom["description"])
                st.caption(f"Created by {classroom['createdBy']['email']} · {len(classroom['members'])} members")
            with col2:
                if st.button("Open", key=f"open_{classroom['id']}"):
                    open_classroom(classroom["id"])


# ----------------------
# Classroom
# ----------------------

@st.fragment(run_every=config.POLL_INTERVAL_SECONDS)
def display_active_session(classroom_id):
    """Live session panel, refreshed every POLL_INTERVAL_SECONDS."""
    user = st.session_state.user
    client = get_client()
    session, ok = call_api(client.get_active_session, classroom_id)
    if not ok:
        return

    st.subheader("Attendance Session")
    if not session:
        st.info("No active attendance session")
        if user["role"] == "admin" and st.button("Start Attendance"):
            _, started = call_api(client.start_session, classroom_id)
            if started:
                st.rerun(scope="app")
        return

    st.success(f"Session active since {format_time(session['startTime'])}")
    st.metric("Students present", len(session["records"]))

    if user["role"] == "admin":
        if st.button("End Attendance"):
            _, ended = call_api(client.end_session, session["id"])
            if ended:
                st.rerun(scope="app")
    else:
        already_marked = any(record["student"]["id"] == user["id"] for record in session["records"])
        if already_marked:
            st.info("You are marked present")
        elif st.button("Mark Present"):
            _, marked = call_api(client.mark_present, session["id"])
            if marked:
                st.toast("Attendance marked successfully")
                st.rerun()

    if session["records"]:
        df = pd.DataFrame([
            {
                "email": record["student"]["email"],
                "student_id": record["student"]["studentId"],
                "marked_at": format_time(record["markedAt"]),
            }
            for record in session["records"]
        ])
        st.dataframe(df, hide_index=True)


def display_session_history(classroom_id):
    st.subheader("Attendance History")
    filter_by_day = st.checkbox("Filter by date")
    on = st.date_input("Date") if filter_by_day else None

    sessions, ok = call_api(get_client().list_session_history, classroom_id, on)
    if not ok:
        return
    if not sessions:
        st.info("No attendance sessions found")
        return

    summary = pd.DataFrame([
        {
            "session": session["id"],
            "started": format_time(session["startTime"]),
            "ended": format_time(session["endTime"]),
            "status": session["status"],
            "present": len(session["records"]),
        }
        for session in sessions
    ])

    fig = px.bar(summary, x="started", y="present", title="Students present per session")
    st.plotly_chart(fig)
    st.dataframe(summary, hide_index=True)

    for session in sessions:
        with st.expander(f"{format_time(session['startTime'])} · {session['status']}"):
            if session["records"]:
                st.dataframe(pd.DataFrame([
                    {
                        "email": record["student"]["email"],
                        "student_id": record["student"]["studentId"],
                        "marked_at": format_time(record["markedAt"]),
                    }
                    for record in session["records"]
                ]), hide_index=True)
            else:
                st.write("No students marked present")


def display_classroom():
    classroom_id = st.session_state.classroom_id
    if st.button("← Back to classrooms"):
        st.session_state.page = "dashboard"
        st.session_state.classroom_id = None
        st.rerun()

    classroom, ok = call_api(get_client().get_classroom, classroom_id)
    if not ok:
        return

    st.title(classroom["name"])
    if classroom.get("description"):
        st.write(classroom["description"])
    st.caption(f"Created by {classroom['createdBy']['email']}")
    if st.session_state.user["role"] == "admin":
        st.info(f"Join code: **{classroom['joinCode']}**")

    tab1, tab2, tab3 = st.tabs(["Session", "History", "Members"])
    with tab1:
        display_active_session(classroom_id)
    with tab2:
        display_session_history(classroom_id)
    with tab3:
        st.dataframe(pd.DataFrame(classroom["members"])[["email", "role"]], hide_index=True)


def main():
    st.set_page_config(layout="wide", page_title="Classroom Attendance")
    init_session_state()

    if st.session_state.page == "landing":
        landing_page()
        return
    if not st.session_state.token:
        display_login_register()
        return

    user = st.session_state.user
    st.sidebar.title(f"Welcome, {user['email']}")
    st.sidebar.caption(user["role"].capitalize())
    if st.sidebar.button("Logout"):
        logout()

    if st.session_state.page == "classroom" and st.session_state.classroom_id:
        display_classroom()
    else:
        display_dashboard()


if __name__ == "__main__":
    main()
