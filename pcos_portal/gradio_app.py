"""
PCOS Portal - Gradio Application
Data-entry UI over the same service functions the API uses: sign-in,
participant enrollment, hormonal/metabolic panels, file uploads, data view
and JSON export.
"""
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import gradio as gr
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from pcos_portal.auth import login_user, logout_user, register_user, require_user
from pcos_portal.config import settings
from pcos_portal.data_view import (
    export_filename,
    export_json,
    files_table,
    hormonal_table,
    load_participant_data,
    metabolic_table,
    participant_summary,
)
from pcos_portal.database import SessionLocal, init_db, session_scope
from pcos_portal.exceptions import AuthenticationError, FormValidationError, NotFoundError, PortalError
from pcos_portal.files import GENETIC_TEST_TYPES, IMAGING_TYPES, upload_participant_file, upload_success_message
from pcos_portal.hormonal import MENSTRUAL_HISTORY_OPTIONS, HormonalPanelForm, record_hormonal_panel
from pcos_portal.log_config import setup_logging
from pcos_portal.metabolic import MetabolicPanelForm, metabolic_success_message, record_metabolic_panel
from pcos_portal.participants import (
    SEX_OPTIONS,
    ParticipantForm,
    enroll_participant,
    find_participant_for_user,
    get_owned_participant,
)
from pcos_portal.session import AuthEvent, SessionContext, auth_notifier
from pcos_portal.storage import BlobStorage, get_storage

logger = logging.getLogger(__name__)

HORMONAL_FIELDS = [
    "sample_date", "menstrual_history", "lh", "fsh", "testosterone_total",
    "testosterone_free", "dhea_s", "shbg", "prolactin", "amh",
]
METABOLIC_FIELDS = [
    "sample_date", "fasting_glucose", "hba1c", "insulin_fasting", "hdl", "ldl",
    "triglycerides", "total_cholesterol", "blood_pressure_systolic",
    "blood_pressure_diastolic", "waist_circumference_cm",
]


def notify_success(message: str) -> str:
    gr.Info(message)
    return message


def notify_error(error: PortalError) -> str:
    gr.Warning(error.message)
    return f"Error: {error.message}"


def parse_form(form_cls, values: Dict[str, Any]) -> BaseModel:
    """Blank inputs count as missing; the first failing field is reported"""
    cleaned = {
        key: (None if isinstance(value, str) and not value.strip() else value)
        for key, value in values.items()
    }
    try:
        return form_cls(**{key: value for key, value in cleaned.items() if value is not None})
    except ValidationError as e:
        raise FormValidationError.from_pydantic(e) from e


def empty_view():
    """Viewer outputs when nothing is loaded"""
    return (
        "",
        hormonal_table([]),
        metabolic_table([]),
        files_table([], "genetic_test_type"),
        files_table([], "imaging_type"),
    )


class PortalShell:
    """
    Top-level UI shell. Owns the single auth-change subscription: sign-in
    registers a session context, sign-out (from the UI or the API) revokes it.
    Handlers receive the per-browser state dict and resolve the session
    context from it.
    """

    def __init__(
        self,
        session_factory=None,
        storage: Optional[BlobStorage] = None,
        export_dir: Optional[Path] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.storage = storage or get_storage()
        self.export_dir = Path(export_dir or tempfile.mkdtemp(prefix="pcos_export_"))
        self._sessions: Dict[str, SessionContext] = {}
        self._unsubscribe = auth_notifier.subscribe(self.on_auth_change)

    # ---------- session context ----------

    def on_auth_change(self, event: AuthEvent, context: Optional[SessionContext]) -> None:
        if context is None:
            return
        if event == AuthEvent.SIGNED_IN:
            self._sessions[context.token] = context
        elif event == AuthEvent.SIGNED_OUT:
            self._sessions.pop(context.token, None)

    def current_session(self, state: dict) -> SessionContext:
        context = (state or {}).get("session")
        if context is None or context.token not in self._sessions:
            raise AuthenticationError("Not authenticated")
        return context

    def close(self) -> None:
        """Dispose of the shell: drops the auth subscription"""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._sessions.clear()

    def _require_user(self, db, context: SessionContext):
        """Resolve the account; a session the store no longer accepts is forgotten"""
        try:
            return require_user(context.token, db)
        except AuthenticationError:
            self._sessions.pop(context.token, None)
            raise

    def _participant_pk(self, state: dict) -> str:
        participant_pk = (state or {}).get("participant_pk")
        if not participant_pk:
            raise NotFoundError("Please create a participant profile first", resource="participant")
        return participant_pk

    # ---------- auth ----------

    def _signed_in(self, context: SessionContext, message: str):
        with session_scope(self.session_factory) as db:
            participant = find_participant_for_user(db, context.user_id)
            participant_pk = participant.id if participant else None
        state = {"session": context, "participant_pk": participant_pk}
        welcome = f"## Welcome, {context.username}!"
        return message, state, gr.update(visible=False), gr.update(visible=True), welcome

    def handle_login(self, username: str, password: str, state: dict):
        """Handle login button click"""
        try:
            with session_scope(self.session_factory) as db:
                context = login_user(db, username, password)
        except PortalError as e:
            return notify_error(e), state, gr.update(visible=True), gr.update(visible=False), ""
        return self._signed_in(context, "Login successful")

    def handle_register(self, username: str, password: str, state: dict):
        """Handle register button click"""
        try:
            with session_scope(self.session_factory) as db:
                context = register_user(db, username, password)
        except PortalError as e:
            return notify_error(e), state, gr.update(visible=True), gr.update(visible=False), ""
        return self._signed_in(context, "Registration successful")

    def handle_logout(self, state: dict):
        """Handle logout"""
        context = (state or {}).get("session")
        if context is not None:
            with session_scope(self.session_factory) as db:
                logout_user(db, context.token)
        return {}, gr.update(visible=True), gr.update(visible=False)

    # ---------- forms ----------

    def submit_participant(self, state: dict, participant_id, age, sex, ethnicity,
                           height_cm, weight_kg, date_of_birth, consent):
        """Process the enrollment form"""
        try:
            context = self.current_session(state)
            form = parse_form(ParticipantForm, {
                "participant_id": participant_id,
                "age": int(age) if age is not None else None,
                "sex": sex,
                "ethnicity": ethnicity,
                "height_cm": height_cm,
                "weight_kg": weight_kg,
                "date_of_birth": date_of_birth,
                "consent": bool(consent),
            })
            with session_scope(self.session_factory) as db:
                user = self._require_user(db, context)
                participant, computed = enroll_participant(db, user, form)
                participant_pk = participant.id
                bmi, category = computed.bmi, computed.bmi_category
        except PortalError as e:
            return notify_error(e), state

        state = {**state, "participant_pk": participant_pk}
        message = notify_success("Participant profile created successfully!")
        return f"{message} BMI: {bmi} ({category})", state

    def submit_hormonal(self, state: dict, *values):
        """Process the hormonal panel form; clears the inputs on success"""
        try:
            context = self.current_session(state)
            participant_pk = self._participant_pk(state)
            form = parse_form(HormonalPanelForm, dict(zip(HORMONAL_FIELDS, values)))
            with session_scope(self.session_factory) as db:
                user = self._require_user(db, context)
                participant = get_owned_participant(db, user, participant_pk)
                record_hormonal_panel(db, participant, form)
        except PortalError as e:
            return (notify_error(e),) + tuple(gr.update() for _ in HORMONAL_FIELDS)

        return (notify_success("Hormonal data saved successfully!"),) + tuple(None for _ in HORMONAL_FIELDS)

    def submit_metabolic(self, state: dict, *values):
        """Process the metabolic panel form; clears the inputs on success"""
        try:
            context = self.current_session(state)
            participant_pk = self._participant_pk(state)
            fields = dict(zip(METABOLIC_FIELDS, values))
            for key in ("blood_pressure_systolic", "blood_pressure_diastolic"):
                if fields.get(key) is not None:
                    fields[key] = int(fields[key])
            form = parse_form(MetabolicPanelForm, fields)
            with session_scope(self.session_factory) as db:
                user = self._require_user(db, context)
                participant = get_owned_participant(db, user, participant_pk)
                record = record_metabolic_panel(db, participant, form)
                homa_ir = record.homa_ir
        except PortalError as e:
            return (notify_error(e),) + tuple(gr.update() for _ in METABOLIC_FIELDS)

        return (notify_success(metabolic_success_message(homa_ir)),) + tuple(None for _ in METABOLIC_FIELDS)

    def _upload(self, state: dict, category: str, file_path: Optional[str], fields: Dict[str, Any]) -> str:
        context = self.current_session(state)
        participant_pk = self._participant_pk(state)
        filename, content = None, None
        if file_path:
            path = Path(file_path)
            filename, content = path.name, path.read_bytes()
        with session_scope(self.session_factory) as db:
            user = self._require_user(db, context)
            participant = get_owned_participant(db, user, participant_pk)
            upload_participant_file(db, self.storage, user, participant, category, filename, content, fields)
        return notify_success(upload_success_message(category))

    def upload_genetic(self, state: dict, file_path, genetic_test_type):
        """Upload a genetic data file"""
        try:
            message = self._upload(state, "genetic", file_path, {"genetic_test_type": genetic_test_type})
        except PortalError as e:
            return notify_error(e), gr.update(), gr.update()
        return message, None, None

    def upload_imaging(self, state: dict, file_path, imaging_type, imaging_date, notes):
        """Upload a medical image"""
        try:
            message = self._upload(state, "imaging", file_path, {
                "imaging_type": imaging_type,
                "imaging_date": imaging_date,
                "notes": notes,
            })
        except PortalError as e:
            return notify_error(e), gr.update(), gr.update(), gr.update(), gr.update()
        return message, None, None, None, None

    # ---------- data view ----------

    def _authorize_view(self, state: dict) -> str:
        context = self.current_session(state)
        participant_pk = self._participant_pk(state)
        with session_scope(self.session_factory) as db:
            user = self._require_user(db, context)
            get_owned_participant(db, user, participant_pk)
        return participant_pk

    async def load_data(self, state: dict):
        """Populate every viewer section, or none of them"""
        try:
            participant_pk = await run_in_threadpool(self._authorize_view, state)
            data = await load_participant_data(self.session_factory, participant_pk)
        except PortalError as e:
            notify_error(e)
            return empty_view()

        return (
            participant_summary(data),
            hormonal_table(data.hormonal_data),
            metabolic_table(data.metabolic_data),
            files_table(data.genetic_files, "genetic_test_type"),
            files_table(data.imaging_files, "imaging_type"),
        )

    async def export_data(self, state: dict) -> Optional[str]:
        """Write the JSON export and hand its path to the download component"""
        try:
            participant_pk = await run_in_threadpool(self._authorize_view, state)
            data = await load_participant_data(self.session_factory, participant_pk)
        except PortalError as e:
            notify_error(e)
            return None

        path = await run_in_threadpool(self._write_export, data)
        notify_success("Data exported successfully!")
        return str(path)

    def _write_export(self, data) -> Path:
        path = self.export_dir / export_filename(data)
        path.write_text(export_json(data), encoding="utf-8")
        return path


def create_interface(shell: PortalShell):
    """Create the Gradio interface"""

    with gr.Blocks(title="PCOS Research Portal", theme=gr.themes.Soft()) as app:

        state = gr.State({})

        gr.Markdown("""
        # PCOS Research Portal
        ### Multimodal Clinical Data Collection

        Hormonal, metabolic, genetic and imaging data for PCOS and metabolic syndrome research.
        BMI, LH:FSH ratio and HOMA-IR are calculated automatically.
        """)

        # ==================== AUTH SECTION ====================
        with gr.Group(visible=True) as auth_group:
            gr.Markdown("## Sign In")
            with gr.Row():
                with gr.Column():
                    username_input = gr.Textbox(label="Username", placeholder="Enter username")
                    password_input = gr.Textbox(label="Password", type="password", placeholder="Enter password")
                with gr.Column():
                    login_btn = gr.Button("Login", variant="primary")
                    register_btn = gr.Button("Create Account")
                    auth_status = gr.Textbox(label="Status", interactive=False)

        # ==================== MAIN APP SECTION ====================
        with gr.Group(visible=False) as main_group:
            with gr.Row():
                welcome = gr.Markdown("## Welcome!")
                logout_btn = gr.Button("Sign Out", size="sm")

            with gr.Tabs():

                # -------------------- PARTICIPANT TAB --------------------
                with gr.TabItem("Participant"):
                    participant_id_input = gr.Textbox(label="Participant ID *", placeholder="PCOS-001")
                    with gr.Row():
                        age_input = gr.Number(label="Age *", minimum=1, maximum=150, precision=0)
                        sex_input = gr.Dropdown(label="Sex *", choices=SEX_OPTIONS)
                        ethnicity_input = gr.Textbox(label="Ethnicity *", placeholder="e.g., Caucasian, Asian")
                    with gr.Row():
                        height_input = gr.Number(label="Height (cm) *", minimum=0)
                        weight_input = gr.Number(label="Weight (kg) *", minimum=0)
                        dob_input = gr.Textbox(label="Date of Birth * (YYYY-MM-DD)")
                    consent_input = gr.Checkbox(
                        label="Research Consent *",
                        info="I consent to the collection and use of my clinical data for research purposes."
                    )
                    participant_btn = gr.Button("Create Participant Profile", variant="primary")
                    participant_status = gr.Textbox(label="Status", interactive=False)

                # -------------------- HORMONAL TAB --------------------
                with gr.TabItem("Hormonal"):
                    with gr.Row():
                        h_sample_date = gr.Textbox(label="Sample Date * (YYYY-MM-DD)")
                        h_menstrual = gr.Dropdown(label="Menstrual History *", choices=MENSTRUAL_HISTORY_OPTIONS)
                    with gr.Row():
                        h_lh = gr.Number(label="LH (mIU/mL)", minimum=0)
                        h_fsh = gr.Number(label="FSH (mIU/mL)", minimum=0)
                        h_tt = gr.Number(label="Total Testosterone (ng/dL)", minimum=0)
                        h_tf = gr.Number(label="Free Testosterone (pg/mL)", minimum=0)
                    with gr.Row():
                        h_dhea = gr.Number(label="DHEA-S (µg/dL)", minimum=0)
                        h_shbg = gr.Number(label="SHBG (nmol/L)", minimum=0)
                        h_prolactin = gr.Number(label="Prolactin (ng/mL)", minimum=0)
                        h_amh = gr.Number(label="AMH (ng/mL)", minimum=0)
                    hormonal_inputs = [h_sample_date, h_menstrual, h_lh, h_fsh, h_tt, h_tf,
                                       h_dhea, h_shbg, h_prolactin, h_amh]
                    hormonal_btn = gr.Button("Save Hormonal Data", variant="primary")
                    hormonal_status = gr.Textbox(label="Status", interactive=False)

                # -------------------- METABOLIC TAB --------------------
                with gr.TabItem("Metabolic"):
                    m_sample_date = gr.Textbox(label="Sample Date * (YYYY-MM-DD)")
                    with gr.Row():
                        m_glucose = gr.Number(label="Fasting Glucose (mg/dL)", minimum=0)
                        m_hba1c = gr.Number(label="HbA1c (%)", minimum=0)
                        m_insulin = gr.Number(label="Fasting Insulin (µU/mL)", minimum=0)
                    with gr.Row():
                        m_hdl = gr.Number(label="HDL (mg/dL)", minimum=0)
                        m_ldl = gr.Number(label="LDL (mg/dL)", minimum=0)
                        m_tg = gr.Number(label="Triglycerides (mg/dL)", minimum=0)
                        m_tc = gr.Number(label="Total Cholesterol (mg/dL)", minimum=0)
                    with gr.Row():
                        m_sys = gr.Number(label="BP Systolic (mmHg)", minimum=0, precision=0)
                        m_dia = gr.Number(label="BP Diastolic (mmHg)", minimum=0, precision=0)
                        m_waist = gr.Number(label="Waist Circumference (cm)", minimum=0)
                    metabolic_inputs = [m_sample_date, m_glucose, m_hba1c, m_insulin, m_hdl, m_ldl,
                                        m_tg, m_tc, m_sys, m_dia, m_waist]
                    metabolic_btn = gr.Button("Save Metabolic Data", variant="primary")
                    metabolic_status = gr.Textbox(label="Status", interactive=False)

                # -------------------- FILES TAB --------------------
                with gr.TabItem("Files"):
                    with gr.Row():
                        with gr.Column():
                            gr.Markdown("#### Genetic Data")
                            genetic_file = gr.File(label="Genetic Data File *", type="filepath")
                            genetic_type = gr.Dropdown(label="Genetic Test Type *", choices=GENETIC_TEST_TYPES)
                            genetic_btn = gr.Button("Upload Genetic File", variant="primary")
                            genetic_status = gr.Textbox(label="Status", interactive=False)
                        with gr.Column():
                            gr.Markdown("#### Medical Imaging")
                            imaging_file = gr.File(label="Medical Image *", type="filepath")
                            imaging_type = gr.Dropdown(label="Imaging Type *", choices=IMAGING_TYPES)
                            imaging_date = gr.Textbox(label="Imaging Date (YYYY-MM-DD)")
                            imaging_notes = gr.Textbox(label="Notes", lines=3)
                            imaging_btn = gr.Button("Upload Image", variant="primary")
                            imaging_status = gr.Textbox(label="Status", interactive=False)

                # -------------------- DATA TAB --------------------
                with gr.TabItem("Data"):
                    with gr.Row():
                        refresh_btn = gr.Button("Load Data", variant="primary")
                        export_btn = gr.Button("Export Data")
                    export_file = gr.File(label="Export", interactive=False)
                    summary_md = gr.Markdown()
                    gr.Markdown("#### Hormonal Data")
                    hormonal_df = gr.Dataframe(value=hormonal_table([]), interactive=False)
                    gr.Markdown("#### Metabolic Data")
                    metabolic_df = gr.Dataframe(value=metabolic_table([]), interactive=False)
                    with gr.Row():
                        with gr.Column():
                            gr.Markdown("#### Genetic Files")
                            genetic_df = gr.Dataframe(value=files_table([], "genetic_test_type"), interactive=False)
                        with gr.Column():
                            gr.Markdown("#### Imaging Files")
                            imaging_df = gr.Dataframe(value=files_table([], "imaging_type"), interactive=False)

        # ==================== EVENT HANDLERS ====================
        login_btn.click(
            fn=shell.handle_login,
            inputs=[username_input, password_input, state],
            outputs=[auth_status, state, auth_group, main_group, welcome]
        )

        register_btn.click(
            fn=shell.handle_register,
            inputs=[username_input, password_input, state],
            outputs=[auth_status, state, auth_group, main_group, welcome]
        )

        logout_btn.click(
            fn=shell.handle_logout,
            inputs=[state],
            outputs=[state, auth_group, main_group]
        )

        participant_btn.click(
            fn=shell.submit_participant,
            inputs=[state, participant_id_input, age_input, sex_input, ethnicity_input,
                    height_input, weight_input, dob_input, consent_input],
            outputs=[participant_status, state]
        )

        hormonal_btn.click(
            fn=shell.submit_hormonal,
            inputs=[state] + hormonal_inputs,
            outputs=[hormonal_status] + hormonal_inputs
        )

        metabolic_btn.click(
            fn=shell.submit_metabolic,
            inputs=[state] + metabolic_inputs,
            outputs=[metabolic_status] + metabolic_inputs
        )

        genetic_btn.click(
            fn=shell.upload_genetic,
            inputs=[state, genetic_file, genetic_type],
            outputs=[genetic_status, genetic_file, genetic_type]
        )

        imaging_btn.click(
            fn=shell.upload_imaging,
            inputs=[state, imaging_file, imaging_type, imaging_date, imaging_notes],
            outputs=[imaging_status, imaging_file, imaging_type, imaging_date, imaging_notes]
        )

        refresh_btn.click(
            fn=shell.load_data,
            inputs=[state],
            outputs=[summary_md, hormonal_df, metabolic_df, genetic_df, imaging_df]
        )

        export_btn.click(
            fn=shell.export_data,
            inputs=[state],
            outputs=[export_file]
        )

    return app


def main():
    setup_logging(settings.log_level, settings.log_file)
    init_db()
    shell = PortalShell()
    try:
        app = create_interface(shell)
        app.launch(server_name="0.0.0.0", server_port=7860, share=False)
    finally:
        shell.close()


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    main()
