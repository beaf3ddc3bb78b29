"""
Streamlit app for G-Tuner.

Run with:  streamlit run app.py

Real-time mode: uses st.rerun() as the frame scheduler. Each cycle pulls a
few frames from the audio source, pushes them through the TuningSession,
displays the latest result, then reruns the script for the next batch.
The session itself never loops; this script is the driver.
"""

import logging

import streamlit as st

from guitartuner.config import A4_MAX, A4_MIN, DEFAULT_A4, LOG_LEVEL, SAMPLE_RATE, TUNINGS
from guitartuner.dataset import ToneSource
from guitartuner.pitch import CrepeEstimator, YinEstimator
from guitartuner.session import CaptureUnavailableError, SessionState, TuningSession, TuningStatus
from guitartuner.tuning import TuningModel

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Frames processed per rerun (~4 x 93ms of audio)
FRAMES_PER_RUN = 4

st.set_page_config(page_title="G-Tuner", layout="centered")
st.title("G-Tuner")
st.caption("Guitar tuner with noise learning and YIN pitch detection")


@st.cache_resource
def load_crepe():
    return CrepeEstimator()


def make_source(kind):
    if kind == "Microphone":
        # sounddevice needs PortAudio; only import it when the mic is used
        from guitartuner.audio import MicrophoneSource

        return MicrophoneSource()
    return ToneSource(f0=112.0, seed=0)


# --- Session state init ---
if "session" not in st.session_state:
    st.session_state.session = TuningSession(TuningModel())
    st.session_state.last_report = None
    st.session_state.last_feedback = None
    st.session_state.capture_error = None

session = st.session_state.session

# --- Tuning, calibration, source and model selection ---
col_tuning, col_model = st.columns(2)
with col_tuning:
    tuning_name = st.selectbox("Tuning", list(TUNINGS.keys()))
with col_model:
    model_choice = st.selectbox("Model", ["YIN", "CREPE (Pre-trained)"])

col_cal, col_source = st.columns(2)
with col_cal:
    a4 = st.slider("Calibration (A4)", min_value=A4_MIN, max_value=A4_MAX, value=DEFAULT_A4, step=1.0)
with col_source:
    source_kind = st.selectbox("Input", ["Microphone", "Synthetic tone"], disabled=session.running)

if session.model.tuning_name != tuning_name:
    session.set_tuning(tuning_name)
session.set_calibration(a4)
session.estimator = load_crepe() if model_choice == "CREPE (Pre-trained)" else YinEstimator()

# --- Strings: click one to lock, click again for auto-detect ---
st.subheader(tuning_name)
cols = st.columns(6)
for s in session.model.active_strings():
    locked = session.locked_string == s.display_index
    label = f"{'🔒 ' if locked else ''}{s.label}\n{s.freq:.1f} Hz"
    if cols[s.display_index].button(label, key=f"string-{s.display_index}"):
        session.lock_string(None if locked else s.display_index)
        st.rerun()

st.divider()


# --- Start / Stop toggle ---
def toggle_listening():
    st.session_state.capture_error = None
    if session.running:
        session.stop()
        st.session_state.last_report = None
        st.session_state.last_feedback = None
        return
    session.source = make_source(source_kind)
    try:
        session.start()
    except CaptureUnavailableError as e:
        st.session_state.capture_error = str(e)


if session.running:
    st.button("Stop Listening", on_click=toggle_listening, type="primary")
else:
    st.button("Start Listening", on_click=toggle_listening, type="primary")

if st.session_state.capture_error:
    st.error(f"Microphone unavailable: {st.session_state.capture_error}")

# --- Display results ---
if session.state is SessionState.LEARNING:
    st.info("Learning background noise... keep the strings quiet for a moment.")

report = st.session_state.last_report
feedback = st.session_state.last_feedback

if report is not None and report.confidence is not None:
    st.progress(report.confidence, text=f"Confidence {report.confidence:.0%}")

if feedback is not None:
    col1, col2, col3 = st.columns(3)
    col1.metric("Detected Note", f"{feedback.detected_note}{feedback.octave}")
    col2.metric("Frequency", f"{feedback.frequency_hz:.1f} Hz")
    col3.metric("Cents Off", f"{feedback.smoothed_cents:+.1f}")
    st.slider("Gauge", 0.0, 1.0, feedback.gauge_position, disabled=True, label_visibility="collapsed")

    if feedback.status is TuningStatus.IN_TUNE:
        st.success(feedback.message)
        if feedback.in_tune_edge:
            st.toast(f"{feedback.detected_note}{feedback.octave} is in tune")
    else:
        st.warning(feedback.message)

if session.history:
    st.line_chart(session.history, height=160)

# --- Continuous listening loop ---
if session.running:
    for _ in range(FRAMES_PER_RUN):
        report = session.tick()
        st.session_state.last_report = report
        if report.feedback is not None:
            st.session_state.last_feedback = report.feedback

    # Rerun to process the next frames; this creates the continuous loop
    st.rerun()

st.caption(f"Sample rate {SAMPLE_RATE} Hz, A4 = {session.model.a4_reference:.0f} Hz")
