"""
Integration Tests for Participant Intake

Enrollment validation, consent capture and BMI derivation.
"""
from pcos_portal.models import ComputedValues
from tests.conftest import PARTICIPANT_PAYLOAD, enroll, register


class TestEnrollment:
    """Tests for POST /api/participants."""

    def test_create_participant_derives_bmi(self, client, token):
        response = client.post("/api/participants", json={**PARTICIPANT_PAYLOAD, "token": token})
        assert response.status_code == 200

        data = response.json()
        assert data["message"] == "Participant profile created successfully!"
        assert data["participant"]["participant_id"] == "PCOS-001"
        assert data["participant"]["consent_version"] == "v1.0"
        assert data["participant"]["consent_date"]
        assert data["computed_values"]["bmi"] == 22.04
        assert data["computed_values"]["bmi_category"] == "Normal"
        assert data["computed_values"]["homa_ir_computed"] is None

    def test_one_computed_values_row(self, client, participant_pk, db):
        rows = db.query(ComputedValues).filter(ComputedValues.participant_id == participant_pk).all()
        assert len(rows) == 1

    def test_obese_category(self, client, token):
        response = client.post("/api/participants", json={
            **PARTICIPANT_PAYLOAD, "height_cm": 160.0, "weight_kg": 90.0, "token": token
        })
        assert response.json()["computed_values"]["bmi"] == 35.16
        assert response.json()["computed_values"]["bmi_category"] == "Obese"

    def test_category_bucketed_before_rounding(self, client, token):
        response = client.post("/api/participants", json={
            **PARTICIPANT_PAYLOAD, "height_cm": 100.0, "weight_kg": 18.497, "token": token
        })
        assert response.json()["computed_values"]["bmi"] == 18.5
        assert response.json()["computed_values"]["bmi_category"] == "Underweight"

    def test_consent_required(self, client, token):
        response = client.post("/api/participants", json={**PARTICIPANT_PAYLOAD, "consent": False, "token": token})
        assert response.status_code == 422
        assert "Consent is required" in response.text

    def test_invalid_fields_rejected(self, client, token):
        for override in ({"age": 0}, {"sex": "X"}, {"height_cm": 0}, {"ethnicity": "  "}, {"participant_id": ""}):
            response = client.post("/api/participants", json={**PARTICIPANT_PAYLOAD, **override, "token": token})
            assert response.status_code == 422, override

    def test_requires_authentication(self, client):
        response = client.post("/api/participants", json={**PARTICIPANT_PAYLOAD, "token": "not-a-session"})
        assert response.status_code == 401

    def test_missing_token_is_unauthenticated(self, client):
        response = client.post("/api/participants", json=PARTICIPANT_PAYLOAD)
        assert response.status_code == 401
        assert response.json()["message"] == "Not authenticated"

    def test_one_participant_per_account(self, client, token, participant_pk):
        response = client.post("/api/participants", json={
            **PARTICIPANT_PAYLOAD, "participant_id": "PCOS-002", "token": token
        })
        assert response.status_code == 400
        assert response.json()["message"] == "A participant profile already exists for this account"

    def test_duplicate_study_id_rejected(self, client, participant_pk):
        other = register(client, "second-site")
        response = client.post("/api/participants", json={**PARTICIPANT_PAYLOAD, "token": other})
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "participant_id"


class TestMyParticipant:
    """Tests for GET /api/participants/me."""

    def test_none_before_enrollment(self, client, token):
        response = client.get("/api/participants/me", params={"token": token})
        assert response.status_code == 200
        assert response.json()["participant"] is None

    def test_returns_own_participant(self, client, token):
        participant_pk = enroll(client, token)
        response = client.get("/api/participants/me", params={"token": token})
        assert response.json()["participant"]["id"] == participant_pk
