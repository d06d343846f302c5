"""
Tests for the Data Viewer and JSON Export

Concurrent all-or-nothing loading, export shape, storage-path stripping,
idempotence and viewer tables.
"""
import asyncio
import json

import pytest

from pcos_portal import data_view
from pcos_portal.data_view import (
    EXPORT_KEYS,
    hormonal_table,
    load_participant_data,
    metabolic_table,
    participant_summary,
)
from pcos_portal.exceptions import DataLoadError
from tests.conftest import register


@pytest.fixture
def populated(client, token, participant_pk):
    """Participant with one record of every kind."""
    client.post(f"/api/participants/{participant_pk}/hormonal", json={
        "token": token, "sample_date": "2024-05-02", "menstrual_history": "irregular", "lh": 5.2, "fsh": 4.1
    })
    client.post(f"/api/participants/{participant_pk}/metabolic", json={
        "token": token, "sample_date": "2024-05-02", "fasting_glucose": 95.5, "insulin_fasting": 8.2
    })
    client.post(
        f"/api/participants/{participant_pk}/files/genetic",
        data={"token": token, "genetic_test_type": "SNP"},
        files={"file": ("panel.csv", b"rs123,A,G\n", "text/csv")},
    )
    client.post(
        f"/api/participants/{participant_pk}/files/imaging",
        data={"token": token, "imaging_type": "Ultrasound"},
        files={"file": ("ovary.png", b"\x89PNG", "image/png")},
    )
    return participant_pk


class TestLoad:
    """Tests for the concurrent section load."""

    def test_all_sections_loaded(self, session_factory, populated):
        data = asyncio.run(load_participant_data(session_factory, populated))

        assert data.participant.participant_id == "PCOS-001"
        assert len(data.hormonal_data) == 1
        assert len(data.metabolic_data) == 1
        assert len(data.genetic_files) == 1
        assert len(data.imaging_files) == 1
        assert data.computed_values.homa_ir_computed == pytest.approx(8.2 * 95.5 / 405)

    def test_empty_sections(self, session_factory, participant_pk):
        data = asyncio.run(load_participant_data(session_factory, participant_pk))
        assert data.hormonal_data == []
        assert data.imaging_files == []
        assert data.computed_values.bmi == 22.04

    def test_single_failed_read_aborts_load(self, session_factory, populated, monkeypatch):
        def broken_read(factory, participant_pk):
            raise RuntimeError("connection reset")

        monkeypatch.setitem(data_view.SECTION_READERS, "metabolic_data", broken_read)

        with pytest.raises(DataLoadError) as exc_info:
            asyncio.run(load_participant_data(session_factory, populated))
        assert exc_info.value.message == "Failed to fetch data"

    def test_failed_read_over_api(self, client, token, populated, monkeypatch):
        def broken_read(factory, participant_pk):
            raise RuntimeError("connection reset")

        monkeypatch.setitem(data_view.SECTION_READERS, "imaging_files", broken_read)

        response = client.get(f"/api/participants/{populated}/data", params={"token": token})
        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "Failed to fetch data"
        assert not set(EXPORT_KEYS) & set(body)


class TestExport:
    """Tests for the export document."""

    def test_export_shape(self, client, token, populated):
        response = client.get(f"/api/participants/{populated}/data", params={"token": token})
        assert response.status_code == 200

        data = response.json()
        assert list(data) == EXPORT_KEYS
        assert data["participant"]["participant_id"] == "PCOS-001"
        assert data["hormonalData"][0]["lh_to_fsh_ratio"] == pytest.approx(5.2 / 4.1)
        assert data["computedValues"]["bmi_category"] == "Normal"

    def test_storage_paths_removed(self, client, token, populated):
        response = client.get(f"/api/participants/{populated}/export", params={"token": token})
        data = json.loads(response.content)

        for section in ("geneticFiles", "imagingFiles"):
            assert data[section]
            for entry in data[section]:
                assert "file_path" not in entry
                assert entry["file_name"]
        assert "file_path" not in response.text

    def test_download_headers(self, client, token, populated):
        response = client.get(f"/api/participants/{populated}/export", params={"token": token})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert 'filename="participant_PCOS-001_data.json"' in response.headers["content-disposition"]

    def test_export_is_idempotent(self, client, token, populated):
        first = client.get(f"/api/participants/{populated}/export", params={"token": token})
        second = client.get(f"/api/participants/{populated}/export", params={"token": token})
        assert first.content == second.content

    def test_pretty_printed(self, client, token, participant_pk):
        response = client.get(f"/api/participants/{participant_pk}/export", params={"token": token})
        assert response.text.startswith('{\n  "participant": {')

    def test_other_account_cannot_export(self, client, populated):
        other = register(client, "outsider")
        response = client.get(f"/api/participants/{populated}/export", params={"token": other})
        assert response.status_code == 404

    def test_missing_token(self, client, populated):
        response = client.get(f"/api/participants/{populated}/data")
        assert response.status_code == 401
        assert response.json()["message"] == "Not authenticated"


class TestTables:
    """Tests for viewer rendering."""

    def test_hormonal_table_rounds_ratio(self, session_factory, populated):
        data = asyncio.run(load_participant_data(session_factory, populated))
        frame = hormonal_table(data.hormonal_data)

        assert list(frame.columns) == ["Sample Date", "Menstrual History", "LH", "FSH", "LH:FSH Ratio", "Testosterone"]
        assert frame.iloc[0]["LH:FSH Ratio"] == "1.27"
        assert frame.iloc[0]["Testosterone"] == "—"

    def test_metabolic_table_rounds_homa_ir(self, session_factory, populated):
        data = asyncio.run(load_participant_data(session_factory, populated))
        frame = metabolic_table(data.metabolic_data)
        assert frame.iloc[0]["HOMA-IR"] == "1.93"
        assert frame.iloc[0]["Sample Date"] == "2024-05-02"

    def test_empty_tables_keep_columns(self):
        assert list(metabolic_table([]).columns) == ["Sample Date", "Glucose", "HbA1c", "Insulin", "HOMA-IR", "HDL", "LDL"]
        assert len(hormonal_table([])) == 0

    def test_summary(self, session_factory, populated):
        data = asyncio.run(load_participant_data(session_factory, populated))
        summary = participant_summary(data)
        assert "PCOS-001" in summary
        assert "22.04 (Normal)" in summary
        assert "**HOMA-IR:** 1.93" in summary
