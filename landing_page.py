import streamlit as st


def landing_page():
    st.markdown("""
    <style>
    .hero-title { font-size: 44px !important; font-weight: 700; text-align: center; color: #3949AB; }
    .hero-tagline { font-size: 20px !important; text-align: center; color: #546E7A; margin-bottom: 40px; }
    .card-title { font-size: 22px !important; font-weight: 600; color: #3949AB; }
    .card-text { font-size: 15px !important; color: #455A64; }
    div.stButton > button { display: block; margin: 0 auto; padding: 12px 28px; border-radius: 8px; }
    </style>
    """, unsafe_allow_html=True)

    st.markdown('<p class="hero-title">Classroom Attendance</p>', unsafe_allow_html=True)
    st.markdown('<p class="hero-tagline">Open an attendance session, let students check in with one tap, and keep every session on record.</p>', unsafe_allow_html=True)

    col1, col2, col3 = st.columns(3)

    with col1:
        st.markdown('<p class="card-title">Classrooms</p>', unsafe_allow_html=True)
        st.markdown('<p class="card-text">Teachers create classrooms and share a six character join code with their students.</p>', unsafe_allow_html=True)

    with col2:
        st.markdown('<p class="card-title">Live Sessions</p>', unsafe_allow_html=True)
        st.markdown('<p class="card-text">Start a session and watch check-ins arrive while students mark themselves present.</p>', unsafe_allow_html=True)

    with col3:
        st.markdown('<p class="card-title">History</p>', unsafe_allow_html=True)
        st.markdown('<p class="card-text">Review past sessions by day with the list of students who attended.</p>', unsafe_allow_html=True)

    st.markdown("<br><br>", unsafe_allow_html=True)

    if st.button("Get Started"):
        st.session_state.page = "login_register"
        st.rerun()
