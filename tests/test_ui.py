"""
UI tests for the ShiftBoard application using Streamlit's AppTest framework.

These tests render the GUI functions against a service with in-memory
storage and simulate user interactions: form submissions, button clicks and
widget changes, checking the resulting service state.
"""
from datetime import date

from streamlit.testing.v1 import AppTest

from shiftboard.permissions import permissions_for


def test_ui_day_setup_starts_shift(service):
    """
    Tests that submitting the day-setup form configures the shift with the entered staff.
    """
    def render(svc):
        import gui as gui_module

        gui_module.show_day_setup(svc)

    app = AppTest.from_function(render, args=(service,), default_timeout=15)
    app.run()
    assert not app.exception

    app.text_area[0].input("Dr. Ahmed\n\nDr. Byrne")
    app.text_area[1].input("Nurse Kelly")
    buttons = {btn.label: btn for btn in app.button}
    buttons["Start Shift"].click().run()

    assert service.is_shift_configured()
    assert service.get_shift_date() == date.today().isoformat()
    assert service.get_doctors() == ["Dr. Ahmed", "Dr. Byrne"]
    assert service.get_nurses() == ["Nurse Kelly"]


def test_ui_continue_previous_shift(configured_service):
    """
    Tests that a stored shift with patients can be continued from the day-setup page.
    """
    configured_service.add_patient("Una Reilly")
    configured_service._data["shift_configured"] = False

    def render(svc):
        import gui as gui_module

        gui_module.show_day_setup(svc)

    app = AppTest.from_function(render, args=(configured_service,), default_timeout=15)
    app.run()
    assert any("1 patients" in info.value for info in app.info)

    buttons = {btn.label: btn for btn in app.button}
    buttons["Continue Previous Shift"].click().run()
    assert configured_service.is_shift_configured()


def test_ui_board_renders_patient_cards(configured_service):
    """
    Tests that the main app shows one card per patient on the board.
    """
    configured_service.add_patient("Vera Ward", assigned_box="Box 2")
    configured_service.add_patient("Will Nash")

    def render(svc):
        import gui as gui_module

        gui_module.show_main_app(svc)

    app = AppTest.from_function(render, args=(configured_service,), default_timeout=15)
    app.run()

    assert not app.exception
    labels = [expander.label for expander in app.expander]
    assert any("Vera Ward" in label and "Box 2" in label for label in labels)
    assert any("Will Nash" in label for label in labels)
    assert configured_service.reminder_task.active


def test_ui_add_patient_form(configured_service):
    """
    Tests registering a patient through the board form.
    """
    def render(svc, permissions):
        import gui as gui_module

        gui_module.show_board(svc, permissions)

    app = AppTest.from_function(render, args=(configured_service, permissions_for("coordinator")), default_timeout=15)
    app.run()
    assert any("No patients on the board" in info.value for info in app.info)

    name_input = next(t for t in app.text_input if t.label == "Name")
    name_input.input("Xavier Long")
    buttons = {btn.label: btn for btn in app.button}
    buttons["Add Patient"].click().run()

    assert [p["name"] for p in configured_service.get_patients()] == ["Xavier Long"]


def test_ui_process_state_update(configured_service):
    """
    Tests changing a patient's process state from the patient card.
    """
    patient = configured_service.add_patient("Yvonne Hart")
    pid = patient["id"]

    def render(svc, permissions):
        import gui as gui_module

        gui_module.show_board(svc, permissions)

    app = AppTest.from_function(render, args=(configured_service, permissions_for("coordinator")), default_timeout=15)
    app.run()

    app.selectbox(key=f"state_{pid}").set_value("awaiting_results")
    buttons = {btn.label: btn for btn in app.button}
    buttons["Update Patient"].click().run()

    assert configured_service.get_patient(pid)["process_state"] == "awaiting_results"


def test_ui_viewer_cannot_add_patients(configured_service):
    """
    Tests that the viewer role is not offered the add-patient form.
    """
    configured_service.add_patient("Zoe Flynn")

    def render(svc, permissions):
        import gui as gui_module

        gui_module.show_board(svc, permissions)

    app = AppTest.from_function(render, args=(configured_service, permissions_for("viewer")), default_timeout=15)
    app.run()

    labels = [btn.label for btn in app.button]
    assert "Add Patient" not in labels
    assert "Update Patient" not in labels


def test_ui_history_reopen(configured_service):
    """
    Tests reopening a saved shift from the history panel.
    """
    configured_service.add_patient("Aidan Burke")
    configured_service.end_shift()
    assert not configured_service.is_shift_configured()

    def render(svc, permissions):
        import gui as gui_module

        gui_module.show_history(svc, permissions)

    app = AppTest.from_function(render, args=(configured_service, permissions_for("coordinator")), default_timeout=15)
    app.run()

    buttons = {btn.label: btn for btn in app.button}
    buttons["Reopen This Shift"].click().run()

    assert configured_service.is_shift_configured()
    assert [p["name"] for p in configured_service.get_patients()] == ["Aidan Burke"]


def test_ui_reopen_over_a_live_board_needs_confirmation(configured_service):
    """
    Tests that reopening a saved shift while patients are on the board is only
    possible after confirming that the board will be replaced.
    """
    configured_service.add_patient("Brid Coyle")
    configured_service.end_shift()
    configured_service.configure_shift("2026-01-26", ["Dr. Ahmed"], ["Nurse Kelly"])
    configured_service.add_patient("Cathal Ruane")

    def render(svc, permissions):
        import gui as gui_module

        gui_module.show_history(svc, permissions)

    app = AppTest.from_function(render, args=(configured_service, permissions_for("coordinator")), default_timeout=15)
    app.run()

    assert app.button(key="reopen_shift").disabled
    app.checkbox(key="confirm_reopen_shift").check().run()
    assert not app.button(key="reopen_shift").disabled
    app.button(key="reopen_shift").click().run()

    assert configured_service.get_shift_date() == "2026-01-25"
    assert [p["name"] for p in configured_service.get_patients()] == ["Brid Coyle"]
