"""
Integration Tests for Hormonal and Metabolic Panels

LH:FSH ratio on insert, HOMA-IR on insert and its propagation to the
participant's computed values.
"""
import pytest

from pcos_portal.models import ComputedValues, HormonalRecord
from tests.conftest import enroll, register


def hormonal(client, token, participant_pk, **fields):
    payload = {"token": token, "sample_date": "2024-05-02", "menstrual_history": "irregular", **fields}
    return client.post(f"/api/participants/{participant_pk}/hormonal", json=payload)


def metabolic(client, token, participant_pk, **fields):
    payload = {"token": token, "sample_date": "2024-05-02", **fields}
    return client.post(f"/api/participants/{participant_pk}/metabolic", json=payload)


def computed_row(session_factory, participant_pk) -> ComputedValues:
    with session_factory() as db:
        return db.query(ComputedValues).filter(ComputedValues.participant_id == participant_pk).one()


class TestHormonalPanel:
    """Tests for POST /api/participants/{id}/hormonal."""

    def test_ratio_derived(self, client, token, participant_pk):
        response = hormonal(client, token, participant_pk, lh=5.2, fsh=4.1, testosterone_total=62.0, amh=7.4)
        assert response.status_code == 200

        data = response.json()
        assert data["message"] == "Hormonal data saved successfully!"
        assert data["record"]["lh_to_fsh_ratio"] == pytest.approx(5.2 / 4.1)
        assert data["record"]["testosterone_total"] == 62.0
        assert data["record"]["dhea_s"] is None

    def test_ratio_absent_when_fsh_zero(self, client, token, participant_pk):
        response = hormonal(client, token, participant_pk, lh=5.2, fsh=0)
        assert response.status_code == 200
        assert response.json()["record"]["lh_to_fsh_ratio"] is None

    def test_ratio_absent_without_lh(self, client, token, participant_pk):
        response = hormonal(client, token, participant_pk, fsh=4.1)
        assert response.json()["record"]["lh_to_fsh_ratio"] is None

    def test_records_append(self, client, token, participant_pk, db):
        hormonal(client, token, participant_pk, lh=5.2, fsh=4.1)
        hormonal(client, token, participant_pk, sample_date="2024-06-02", lh=6.0, fsh=3.0)
        assert db.query(HormonalRecord).filter(HormonalRecord.participant_id == participant_pk).count() == 2

    def test_invalid_menstrual_history(self, client, token, participant_pk):
        response = hormonal(client, token, participant_pk, menstrual_history="sometimes")
        assert response.status_code == 422

    def test_negative_value_rejected(self, client, token, participant_pk):
        response = hormonal(client, token, participant_pk, prolactin=-1)
        assert response.status_code == 422

    def test_other_accounts_participant(self, client, participant_pk):
        other = register(client, "another-user")
        response = hormonal(client, other, participant_pk, lh=5.2, fsh=4.1)
        assert response.status_code == 404
        assert response.json()["message"] == "Participant not found"


class TestMetabolicPanel:
    """Tests for POST /api/participants/{id}/metabolic."""

    def test_homa_ir_derived_and_propagated(self, client, token, participant_pk, session_factory):
        response = metabolic(client, token, participant_pk, fasting_glucose=95.5, insulin_fasting=8.2, hdl=48.0)
        assert response.status_code == 200

        data = response.json()
        assert data["homa_ir"] == pytest.approx(1.9336, abs=1e-4)
        assert data["record"]["homa_ir"] == pytest.approx(8.2 * 95.5 / 405)
        assert data["message"] == "Metabolic data saved! HOMA-IR: 1.93"

        computed = computed_row(session_factory, participant_pk)
        assert computed.homa_ir_computed == pytest.approx(8.2 * 95.5 / 405)
        assert computed.bmi == 22.04

    def test_missing_insulin_leaves_computed_values(self, client, token, participant_pk, session_factory):
        before = computed_row(session_factory, participant_pk)

        response = metabolic(client, token, participant_pk, fasting_glucose=95.5, hba1c=5.4)
        assert response.status_code == 200
        assert response.json()["homa_ir"] is None
        assert response.json()["message"] == "Metabolic data saved successfully!"

        after = computed_row(session_factory, participant_pk)
        assert after.homa_ir_computed is None
        assert after.computed_at == before.computed_at

    def test_last_write_wins(self, client, token, participant_pk, session_factory):
        metabolic(client, token, participant_pk, fasting_glucose=95.5, insulin_fasting=8.2)
        metabolic(client, token, participant_pk, sample_date="2024-07-01", fasting_glucose=110.0, insulin_fasting=15.0)

        computed = computed_row(session_factory, participant_pk)
        assert computed.homa_ir_computed == pytest.approx(15.0 * 110.0 / 405)

    def test_propagation_only_touches_homa_ir(self, client, token, participant_pk, session_factory):
        before = computed_row(session_factory, participant_pk)

        metabolic(client, token, participant_pk, fasting_glucose=95.5, insulin_fasting=8.2)

        after = computed_row(session_factory, participant_pk)
        assert after.homa_ir_computed == pytest.approx(8.2 * 95.5 / 405)
        assert after.computed_at == before.computed_at
        assert after.bmi_category == before.bmi_category

    def test_other_participant_untouched(self, client, token, participant_pk, session_factory):
        other_token = register(client, "site-b")
        other_pk = enroll(client, other_token, participant_id="PCOS-002")

        metabolic(client, token, participant_pk, fasting_glucose=95.5, insulin_fasting=8.2)
        assert computed_row(session_factory, other_pk).homa_ir_computed is None

    def test_blood_pressure_integers(self, client, token, participant_pk):
        response = metabolic(client, token, participant_pk, blood_pressure_systolic=118, blood_pressure_diastolic=76)
        assert response.json()["record"]["blood_pressure_systolic"] == 118

    def test_sample_date_required(self, client, token, participant_pk):
        response = client.post(
            f"/api/participants/{participant_pk}/metabolic",
            json={"token": token, "fasting_glucose": 95.5}
        )
        assert response.status_code == 422
