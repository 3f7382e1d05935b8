"""
This is the main entry point for the ShiftBoard Streamlit application.

This script handles the following key responsibilities:
- Sets the overall page configuration for the Streamlit app.
- Configures logging for the process.
- Initializes the `ShiftBoardService`, which owns the shift's data, its
  persistence and the reminder polling task.
- Routes to the day-setup page or the board depending on whether a shift is
  currently running.
"""
# shiftboard/main.py

import streamlit as st

from shiftboard import config
from shiftboard.board import ShiftBoardService
import gui

# Set the basic configuration for the Streamlit page.
st.set_page_config(
    page_title="ShiftBoard",
    layout="wide"
)

config.configure_logging()


# Service Initialization
@st.cache_resource
def get_shiftboard_service():
    """
    Initializes and returns the ShiftBoardService instance.

    The service is created once per server process and shared across reruns,
    so it is the single writer of the shift documents.

    Returns:
        ShiftBoardService: The shared service instance.
    """
    return ShiftBoardService()


service = get_shiftboard_service()

if "role" not in st.session_state:
    st.session_state.role = "coordinator"

# Main App Router
if service.is_shift_configured():
    gui.show_main_app(service)
else:
    gui.show_day_setup(service)
