"""
This module defines the graphical user interface (GUI) for ShiftBoard using Streamlit.

It renders the day-setup page and the shift board: the filtered roster with
one card per patient (process state, triage, staff, sticker-note grid, orders,
appointments and admission), the appointment agenda, shift statistics and
exports, the shift history with reopen, and staff/location settings.

Every change goes through the `ShiftBoardService`; this module holds no state
of its own apart from Streamlit's session state (the selected role). Reminders
are polled on each automatic rerun and shown as toasts.
"""
# shiftboard/gui.py

import datetime

import pandas as pd
import streamlit as st
from streamlit_autorefresh import st_autorefresh

from shiftboard import config
from shiftboard.appointments import can_transition, reminder_message
from shiftboard.models import (
    APPOINTMENT_TYPES,
    BED_STATUSES,
    NOTE_TYPES,
    ORDER_TYPES,
    PROCESS_STATES,
    REMINDER_OPTIONS,
    SPECIALTIES,
    TRIAGE_LEVELS,
    parse_time,
    process_state_label,
)
from shiftboard.permissions import ROLES, permissions_for
from shiftboard.reports import patient_log, roster_frame, shift_statistics
from shiftboard.sticker_notes import slot_map

TRIAGE_COLOURS = {1: "red", 2: "orange", 3: "violet", 4: "green", 5: "blue"}
STATE_VALUES = [value for value, _ in PROCESS_STATES]
APPOINTMENT_ACTIONS = [("in_progress", "Start"), ("completed", "Complete"), ("cancelled", "Cancel")]


def _format_clock(value):
    """Formats an ISO timestamp as HH:MM, or returns a placeholder."""
    parsed = parse_time(value)
    return parsed.strftime("%H:%M") if parsed else "--:--"


def _index_of(options, value, default=0):
    return options.index(value) if value in options else default


def _toast_reminder(reminder):
    """Shows a due appointment reminder as a toast."""
    st.toast(reminder_message(reminder))


def _poll_reminders(service):
    """Reruns the page every poll interval and checks for due reminders."""
    st_autorefresh(interval=config.REMINDER_POLL_SECONDS * 1000, key="reminder_poll")
    task = service.reminder_task
    if task is None or not task.active:
        service.start_reminders(_toast_reminder)
    else:
        task.run_pending()


# Day setup

def show_day_setup(service):
    """Renders the start-of-day page: continue the stored shift or start a new one."""
    st.title("ShiftBoard")
    st.subheader("Start of Day")

    previous_date = service.get_shift_date()
    previous_patients = service.get_patients()
    if previous_date and previous_patients:
        st.info(f"A shift from {previous_date} with {len(previous_patients)} patients was found.")
        if st.button("Continue Previous Shift"):
            service.load_previous_shift()
            st.rerun()

    with st.form("day_setup_form"):
        shift_date = st.date_input("Shift date", value=datetime.date.today())
        physicians = st.text_area("Physicians (one per line)", value="\n".join(service.get_doctors()))
        nurses = st.text_area("Nurses and support staff (one per line)", value="\n".join(service.get_nurses()))
        submitted = st.form_submit_button("Start Shift")

    if submitted:
        service.configure_shift(shift_date, physicians.splitlines(), nurses.splitlines())
        st.success(f"Shift for {shift_date} started.")
        st.rerun()


# Main board

def show_main_app(service):
    """Renders the board and its side panels for the running shift."""
    if not service.is_shift_configured():
        show_day_setup(service)
        return

    _poll_reminders(service)
    role = st.sidebar.selectbox("Role", ROLES, index=_index_of(list(ROLES), st.session_state.get("role")))
    st.session_state["role"] = role
    permissions = permissions_for(role)

    st.title(f"ShiftBoard - {service.get_shift_date()}")
    summary = service.shift_summary()
    cols = st.columns(4)
    cols[0].metric("Patients", summary["total_patients"])
    cols[1].metric("Admissions", summary["admissions"])
    cols[2].metric("Discharges", summary["discharges"])
    cols[3].metric("Transfers", summary["transfers"])

    board_tab, agenda_tab, stats_tab, history_tab, settings_tab = st.tabs(
        ["Board", "Agenda", "Statistics", "History", "Settings"]
    )
    with board_tab:
        show_board(service, permissions)
    with agenda_tab:
        show_agenda(service)
    with stats_tab:
        show_statistics(service, permissions)
    with history_tab:
        show_history(service, permissions)
    with settings_tab:
        show_settings(service, permissions)

    if permissions["can_configure_shift"]:
        _render_end_shift(service)


def _render_filters(service):
    """Renders the sidebar filters and stores any change with the shift."""
    st.sidebar.header("Filters")
    filters = service.get_filters()

    search = st.sidebar.text_input("Search", value=filters["search_query"] or "")
    doctors = ["All"] + service.get_doctors()
    doctor = st.sidebar.selectbox("Physician", doctors, index=_index_of(doctors, filters["doctor"]))
    nurses = ["All"] + service.get_nurses()
    nurse = st.sidebar.selectbox("Nurse", nurses, index=_index_of(nurses, filters["nurse"]))
    studies = ["All"] + service.get_note_options("study")
    study = st.sidebar.selectbox("Pending study", studies, index=_index_of(studies, filters["pending_study"]))
    states = ["All"] + STATE_VALUES
    state = st.sidebar.selectbox(
        "Process state", states, index=_index_of(states, filters["process_state"]),
        format_func=lambda s: s if s == "All" else process_state_label(s),
    )
    hide = st.sidebar.checkbox("Hide discharged", value=bool(filters["hide_discharged"]))

    chosen = {
        "search_query": search,
        "doctor": None if doctor == "All" else doctor,
        "nurse": None if nurse == "All" else nurse,
        "pending_study": None if study == "All" else study,
        "process_state": None if state == "All" else state,
        "hide_discharged": hide,
    }
    for name, value in chosen.items():
        if value != filters[name]:
            service.set_filter(name, value)


def show_board(service, permissions):
    """Renders the add-patient form and the filtered patient cards."""
    _render_filters(service)

    if permissions["can_create_patients"]:
        with st.form("add_patient_form", clear_on_submit=True):
            st.markdown("**Add Patient**")
            c1, c2, c3 = st.columns(3)
            name = c1.text_input("Name")
            m_number = c2.text_input("M-number")
            date_of_birth = c3.text_input("Date of birth")
            complaint = st.text_input("Chief complaint")
            c4, c5, c6 = st.columns(3)
            triage = c4.selectbox("Triage", TRIAGE_LEVELS, index=2)
            box = c5.selectbox("Box", [""] + service.get_locations())
            doctor = c6.selectbox("Physician", [""] + service.get_doctors())
            submitted = st.form_submit_button("Add Patient")
        if submitted:
            if not name.strip():
                st.error("A patient name is required.")
            else:
                service.add_patient(
                    name.strip(), triage_level=triage, assigned_box=box, doctor=doctor,
                    m_number=m_number, date_of_birth=date_of_birth, chief_complaint=complaint,
                )
                st.rerun()

    patients = service.list_active_patients()
    if not patients:
        st.info("No patients on the board.")
        return
    for patient in patients:
        _render_patient_card(service, patient, permissions)


def _render_patient_card(service, patient, permissions):
    """Renders one patient as an expandable card."""
    pid = patient["id"]
    triage = patient.get("triage_level")
    header = (
        f":{TRIAGE_COLOURS.get(triage, 'gray')}[T{triage}] {patient.get('name')} | "
        f"{patient.get('assigned_box') or 'No box'} | {process_state_label(patient.get('process_state'))}"
    )
    with st.expander(header):
        info, notes = st.columns([2, 3])
        with info:
            st.markdown(f"**M-number:** {patient.get('m_number') or '-'}  \n"
                        f"**DOB:** {patient.get('date_of_birth') or '-'}  \n"
                        f"**Complaint:** {patient.get('chief_complaint') or '-'}  \n"
                        f"**Physician:** {patient.get('doctor') or '-'}  \n"
                        f"**Nurse:** {patient.get('nurse') or '-'}  \n"
                        f"**Arrived:** {_format_clock(patient.get('arrival_time'))}  \n"
                        f"**Now in:** {patient.get('current_location') or '-'}")
            if patient.get("transferred_to"):
                st.markdown(f"**Transferred to:** {patient['transferred_to']}")
        with notes:
            _render_note_grid(patient)

        if permissions["can_edit_clinical_info"]:
            _render_clinical_form(service, patient)
        if permissions["can_manage_notes"]:
            _render_note_controls(service, patient)
        if permissions["can_manage_orders"]:
            _render_orders(service, patient)
        _render_appointments(service, patient, permissions)
        _render_admission(service, patient, permissions)

        if st.checkbox("Show patient log", key=f"log_{pid}"):
            st.code(patient_log(patient), language=None)


def _render_note_grid(patient):
    """Renders the sticker notes in their 3x3 slot grid."""
    notes = slot_map(patient)
    for row in range(0, config.TOTAL_NOTE_SLOTS, 3):
        cells = st.columns(3)
        for offset, cell in enumerate(cells):
            note = notes.get(row + offset)
            if note is None:
                cell.caption(f"{row + offset + 1}. -")
                continue
            text = note.get("text")
            if note.get("completed"):
                text = f"~~{text}~~"
            cell.markdown(f"{row + offset + 1}. **{NOTE_TYPES.get(note.get('type'), note.get('type'))}**: {text}")


def _render_clinical_form(service, patient):
    """Renders the process state, triage, staffing and location form."""
    pid = patient["id"]
    with st.form(f"clinical_form_{pid}"):
        c1, c2, c3 = st.columns(3)
        state = c1.selectbox(
            "Process state", STATE_VALUES, index=_index_of(STATE_VALUES, patient.get("process_state")),
            format_func=process_state_label, key=f"state_{pid}",
        )
        triage = c2.selectbox("Triage", TRIAGE_LEVELS, index=_index_of(list(TRIAGE_LEVELS), patient.get("triage_level"), 2),
                              key=f"triage_{pid}")
        destination = c3.text_input("Transfer destination", value=patient.get("transferred_to") or "",
                                    key=f"dest_{pid}")
        c4, c5, c6, c7 = st.columns(4)
        doctors = [""] + service.get_doctors()
        doctor = c4.selectbox("Physician", doctors, index=_index_of(doctors, patient.get("doctor")), key=f"doc_{pid}")
        nurses = [""] + service.get_nurses()
        nurse = c5.selectbox("Nurse", nurses, index=_index_of(nurses, patient.get("nurse")), key=f"nurse_{pid}")
        locations = [""] + service.get_locations()
        box = c6.selectbox("Box", locations, index=_index_of(locations, patient.get("assigned_box")), key=f"box_{pid}")
        location = c7.selectbox("Current location", locations,
                                index=_index_of(locations, patient.get("current_location")), key=f"loc_{pid}")
        submitted = st.form_submit_button("Update Patient")

    if not submitted:
        return
    if state != patient.get("process_state") or (state == "transferred" and destination != patient.get("transferred_to")):
        service.set_process_state(pid, state, transferred_to=destination.strip() or None)
    if triage != patient.get("triage_level"):
        service.set_triage_level(pid, triage)
    if doctor != patient.get("doctor"):
        service.assign_doctor(pid, doctor)
    if nurse != patient.get("nurse"):
        service.assign_nurse(pid, nurse)
    if box != patient.get("assigned_box"):
        service.set_assigned_box(pid, box)
    elif location != patient.get("current_location"):
        service.set_current_location(pid, location)
    st.rerun()


def _render_note_controls(service, patient):
    """Renders the add-note form and per-note actions."""
    pid = patient["id"]
    with st.form(f"note_form_{pid}", clear_on_submit=True):
        c1, c2 = st.columns([1, 2])
        note_type = c1.selectbox("Note type", list(NOTE_TYPES), format_func=NOTE_TYPES.get, key=f"ntype_{pid}")
        text = c2.text_input("Note text", key=f"ntext_{pid}")
        submitted = st.form_submit_button("Add Note")
    if submitted:
        if service.add_note(pid, note_type, text) is None:
            st.warning("The note could not be added (empty text or all slots taken).")
        else:
            st.rerun()

    for note in sorted(patient.get("sticker_notes", []), key=lambda n: n.get("slot_index") or 0):
        nid = note["id"]
        c1, c2, c3, c4, c5 = st.columns([3, 1, 1, 1, 1])
        c1.write(f"{NOTE_TYPES.get(note['type'], note['type'])}: {note.get('text')}")
        slot = c2.number_input("Slot", min_value=1, max_value=config.TOTAL_NOTE_SLOTS,
                               value=(note.get("slot_index") or 0) + 1, key=f"slot_{nid}",
                               label_visibility="collapsed")
        if c3.button("Move", key=f"move_{nid}"):
            if service.move_note_to_slot(pid, nid, int(slot) - 1):
                # A swap changes another note's slot too; let every slot input reload.
                for other in patient.get("sticker_notes", []):
                    st.session_state.pop(f"slot_{other['id']}", None)
                st.rerun()
            else:
                st.warning("That slot is taken; free it before placing this note.")
        if note.get("type") == "study":
            label = "Undo" if note.get("completed") else "Done"
            if c4.button(label, key=f"toggle_{nid}"):
                service.toggle_note_completion(pid, nid)
                st.rerun()
        if c5.button("Remove", key=f"remove_{nid}"):
            service.remove_note(pid, nid)
            st.rerun()


def _render_orders(service, patient):
    """Renders the orders list with advance buttons and the add-order form."""
    pid = patient["id"]
    st.markdown("**Orders**")
    for order in patient.get("orders", []):
        c1, c2 = st.columns([4, 1])
        stamps = f"ordered {_format_clock(order.get('ordered_at'))}"
        if order.get("done_at"):
            stamps += f", done {_format_clock(order['done_at'])}"
        if order.get("reported_at"):
            stamps += f", reported {_format_clock(order['reported_at'])}"
        c1.write(f"{order.get('description')} ({order.get('type')}) - {order.get('status')} [{stamps}]")
        if order.get("status") != "reported" and c2.button("Advance", key=f"advance_{order['id']}"):
            service.advance_order_status(pid, order["id"])
            st.rerun()

    with st.form(f"order_form_{pid}", clear_on_submit=True):
        c1, c2 = st.columns([1, 2])
        order_type = c1.selectbox("Order type", ORDER_TYPES, key=f"otype_{pid}")
        description = c2.text_input("Description", key=f"odesc_{pid}")
        if st.form_submit_button("Add Order") and description.strip():
            service.add_order(pid, order_type, description.strip())
            st.rerun()


def _render_appointments(service, patient, permissions):
    """Renders the patient's appointments and the scheduling form."""
    pid = patient["id"]
    st.markdown("**Appointments**")
    for appointment in patient.get("appointments", []):
        aid = appointment["id"]
        label = APPOINTMENT_TYPES.get(appointment.get("type"), {}).get("label", appointment.get("type"))
        cols = st.columns([3, 1, 1, 1])
        cols[0].write(f"{label} at {_format_clock(appointment.get('scheduled_time'))} - {appointment.get('status')}")
        if not permissions["can_manage_orders"]:
            continue
        for col, (status, action) in zip(cols[1:], APPOINTMENT_ACTIONS):
            if can_transition(appointment.get("status"), status) and col.button(action, key=f"{status}_{aid}"):
                service.set_appointment_status(pid, aid, status)
                st.rerun()

    if not permissions["can_manage_orders"]:
        return
    with st.form(f"appointment_form_{pid}", clear_on_submit=True):
        c1, c2, c3, c4 = st.columns(4)
        appointment_type = c1.selectbox("Type", list(APPOINTMENT_TYPES),
                                        format_func=lambda t: APPOINTMENT_TYPES[t]["label"], key=f"atype_{pid}")
        day = c2.date_input("Date", value=datetime.date.today(), key=f"adate_{pid}")
        at = c3.time_input("Time", value=datetime.time(datetime.datetime.now().hour, 0), key=f"atime_{pid}")
        reminder = c4.selectbox("Remind (min)", REMINDER_OPTIONS, index=_index_of(list(REMINDER_OPTIONS), 30),
                                key=f"aremind_{pid}")
        notes = st.text_input("Notes", key=f"anotes_{pid}")
        if st.form_submit_button("Schedule"):
            service.add_appointment(pid, appointment_type, datetime.datetime.combine(day, at), reminder, notes)
            st.rerun()


def _render_admission(service, patient, permissions):
    """Renders the admission checklist, or the button that starts it."""
    pid = patient["id"]
    admission = patient.get("admission")
    if not permissions["can_edit_clinical_info"]:
        return
    if not admission:
        if st.button("Start Admission", key=f"admit_{pid}"):
            service.start_admission(pid)
            st.rerun()
        return

    st.markdown("**Admission**")
    with st.form(f"admission_form_{pid}"):
        c1, c2, c3, c4 = st.columns(4)
        specialties = [""] + SPECIALTIES
        specialty = c1.selectbox("Specialty", specialties, index=_index_of(specialties, admission.get("specialty")),
                                 key=f"spec_{pid}")
        consultant = c2.text_input("Consultant", value=admission.get("consultant_name") or "", key=f"cons_{pid}")
        bed = c3.text_input("Bed", value=admission.get("bed_number") or "", key=f"bed_{pid}")
        bed_status = c4.selectbox("Bed status", BED_STATUSES, index=_index_of(list(BED_STATUSES), admission.get("bed_status")),
                                  key=f"bedst_{pid}")
        checks = {
            "registrar_called": "Registrar contacted",
            "admin_complete": "Administrative admission",
            "id_bracelet_verified": "ID bracelet",
            "mrsa_swabs": "MRSA swabs",
            "falls_assessment": "Falls assessment",
        }
        values = {key: st.checkbox(label, value=bool(admission.get(key)), key=f"{key}_{pid}")
                  for key, label in checks.items()}
        handover = st.text_area("Handover notes", value=admission.get("handover_notes") or "", key=f"hand_{pid}")
        saved = st.form_submit_button("Save Admission")
    if saved:
        values.update(specialty=specialty, consultant_name=consultant, bed_number=bed,
                      bed_status=bed_status, handover_notes=handover)
        service.update_admission(pid, values)
        st.rerun()
    if not admission.get("completed_at"):
        if st.button("Complete Admission", key=f"complete_admission_{pid}"):
            service.complete_admission(pid)
            st.rerun()
    else:
        st.caption(f"Admission completed at {_format_clock(admission['completed_at'])}")


# Side panels

def show_agenda(service):
    """Renders the appointment agenda grouped by urgency."""
    groups = service.get_agenda()
    titles = [
        ("overdue", "Overdue"),
        ("upcoming", "Next hour"),
        ("in_progress", "In progress"),
        ("later", "Later"),
        ("done", "Done"),
    ]
    if not any(groups.values()):
        st.info("No appointments scheduled.")
        return
    for key, title in titles:
        items = groups[key]
        if not items:
            continue
        st.subheader(f"{title} ({len(items)})")
        for item in items:
            appointment = item["appointment"]
            label = APPOINTMENT_TYPES.get(appointment.get("type"), {}).get("abbrev", appointment.get("type"))
            st.write(
                f"{_format_clock(appointment.get('scheduled_time'))} {label} - {item['patient_name']} "
                f"({item['patient_box']}), {item['minutes_until']} min"
            )


def show_statistics(service, permissions):
    """Renders shift statistics and, for coordinators, the CSV export."""
    patients = service.get_patients()
    stats = shift_statistics(patients)
    cols = st.columns(4)
    cols[0].metric("Active", stats["active"])
    cols[1].metric("Did not wait", stats["did_not_wait"])
    cols[2].metric("Admissions", stats["admissions"])
    cols[3].metric("Discharges", stats["discharges"])

    st.subheader("Triage distribution")
    st.bar_chart(pd.DataFrame({"patients": stats["triage"]}))
    if stats["pending_studies"]:
        st.subheader("Pending studies")
        st.table(pd.DataFrame(sorted(stats["pending_studies"].items()), columns=["study", "patients"]))
    if stats["followups"]:
        st.subheader("Follow-ups")
        st.table(pd.DataFrame(sorted(stats["followups"].items()), columns=["follow-up", "patients"]))

    if permissions["can_export_data"] and patients:
        st.download_button(
            "Download Roster (CSV)", roster_frame(patients).to_csv(index=False).encode("utf-8"),
            f"shiftboard_{service.get_shift_date()}.csv", "text/csv",
        )


def show_history(service, permissions):
    """Renders saved shifts and lets coordinators reopen one."""
    dates = service.get_history_dates()
    if not dates:
        st.info("No saved shifts yet.")
        return

    viewing = service.get_viewing_date()
    selected = st.selectbox("Saved shift", dates, index=_index_of(dates, viewing))
    if selected != viewing:
        service.set_viewing_date(selected)

    snapshot = service.load_shift(selected)
    if snapshot is None:
        st.warning(f"No saved shift for {selected}.")
        return
    summary = snapshot.get("summary") or {}
    cols = st.columns(4)
    cols[0].metric("Patients", summary.get("total_patients", 0))
    cols[1].metric("Admissions", summary.get("admissions", 0))
    cols[2].metric("Discharges", summary.get("discharges", 0))
    cols[3].metric("Transfers", summary.get("transfers", 0))
    st.caption(f"Saved at {snapshot.get('saved_at')}")
    st.dataframe(roster_frame(snapshot.get("patients") or []), hide_index=True)

    if permissions["can_configure_shift"]:
        live_patients = len(service.get_patients())
        confirm = True
        if live_patients:
            st.warning(f"Reopening replaces the current board ({live_patients} patients) without saving it.")
            confirm = st.checkbox("Replace the current board", key="confirm_reopen_shift")
        if st.button("Reopen This Shift", key="reopen_shift", disabled=not confirm):
            if service.reopen_shift(selected):
                st.success(f"Shift {selected} reopened.")
                st.rerun()
            else:
                st.error(f"Could not reopen shift {selected}.")
        if st.button("Clear Old History", key="clear_history"):
            removed = service.clear_old_history()
            st.info(f"Removed {removed} saved shifts older than {config.HISTORY_RETENTION_DAYS} days.")


def show_settings(service, permissions):
    """Renders staff, location and note pick-list management."""
    if not permissions["can_configure_shift"]:
        st.info("Only the coordinator can change the shift settings.")
        return

    rosters = [("doctors", "Physicians", service.get_doctors()), ("nurses", "Nurses", service.get_nurses())]
    for roster_name, title, names in rosters:
        st.subheader(title)
        with st.form(f"{roster_name}_form", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            current = c1.selectbox("Name", [""] + names, key=f"{roster_name}_current")
            new_name = c2.text_input("New name", key=f"{roster_name}_new")
            action = c3.radio("Action", ["Add", "Rename", "Remove"], horizontal=True, key=f"{roster_name}_action")
            if st.form_submit_button("Apply"):
                if action == "Add":
                    done = service.add_staff(roster_name, new_name)
                elif action == "Rename":
                    done = service.rename_staff(roster_name, current, new_name)
                else:
                    done = service.remove_staff(roster_name, current)
                if done:
                    st.rerun()
                else:
                    st.warning(f"Could not {action.lower()} that name.")

    st.subheader("Locations")
    with st.form("locations_form", clear_on_submit=True):
        c1, c2, c3 = st.columns(3)
        current = c1.selectbox("Location", [""] + service.get_locations(), key="location_current")
        new_name = c2.text_input("New name", key="location_new")
        action = c3.radio("Action", ["Add", "Rename", "Remove"], horizontal=True, key="location_action")
        if st.form_submit_button("Apply"):
            if action == "Add":
                done = service.add_location(new_name)
            elif action == "Rename":
                done = service.rename_location(current, new_name)
            else:
                done = service.remove_location(current)
            if done:
                st.rerun()
            else:
                st.warning(f"Could not {action.lower()} that location.")

    st.subheader("Note options")
    with st.form("note_options_form", clear_on_submit=True):
        c1, c2 = st.columns(2)
        note_type = c1.selectbox("List", ["study", "followup", "precaution", "discharge"],
                                 format_func=NOTE_TYPES.get, key="option_type")
        value = c2.text_input("New option", key="option_value")
        if st.form_submit_button("Add Option"):
            if service.add_note_option(note_type, value):
                st.rerun()
            else:
                st.warning("That option is empty or already listed.")


def _render_end_shift(service):
    """Renders the end-of-shift control in the sidebar."""
    st.sidebar.divider()
    st.sidebar.header("End of Shift")
    confirm = st.sidebar.checkbox("I have handed over all patients", key="confirm_end_shift")
    if st.sidebar.button("End Shift", disabled=not confirm):
        snapshot = service.end_shift()
        if snapshot is None:
            st.sidebar.info("Shift ended. Nothing was saved to history.")
        else:
            st.sidebar.success(f"Shift {snapshot['date']} saved with {snapshot['summary']['total_patients']} patients.")
        st.rerun()
