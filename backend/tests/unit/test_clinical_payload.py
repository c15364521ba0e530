"""
Unit tests for normalization of the prescription `result` payload.
"""

from utils.clinical_payload import MEDICINE_FIELDS, normalize_medicine, normalize_result


class TestNormalizeMedicine:
    """Test normalization of one medicine row."""

    def test_legacy_keys_are_mapped(self):
        medicine = normalize_medicine({
            "Medicine": "Paracetamol",
            "Type": "Tablet",
            "Dose": "500mg",
            "Interval": "TDS",
            "Rout": "Oral",
            "Duration": "5 days",
        })

        assert medicine == {
            "name": "Paracetamol",
            "type": "Tablet",
            "dose": "500mg",
            "frequency": "TDS",
            "route": "Oral",
            "duration": "5 days",
        }

    def test_missing_fields_become_empty_strings(self):
        medicine = normalize_medicine({"name": "Amoxicillin"})

        assert set(MEDICINE_FIELDS) <= set(medicine)
        assert medicine["name"] == "Amoxicillin"
        assert medicine["dose"] == ""

    def test_extra_keys_are_preserved(self):
        medicine = normalize_medicine({"MedicineName": "ORS", "note": "after meals"})

        assert medicine["name"] == "ORS"
        assert medicine["note"] == "after meals"
        assert "MedicineName" not in medicine

    def test_first_non_empty_alias_wins(self):
        medicine = normalize_medicine({"name": "", "Medicine": "Ibuprofen"})

        assert medicine["name"] == "Ibuprofen"

    def test_non_dict_rows_are_returned_unchanged(self):
        assert normalize_medicine("Paracetamol 500mg") == "Paracetamol 500mg"


class TestNormalizeResult:
    """Test normalization of the whole payload."""

    def test_none_is_empty_list(self):
        assert normalize_result(None) == []

    def test_single_record_is_wrapped(self):
        result = normalize_result({"initial_complaint": "fever"})

        assert result == [{"initial_complaint": "fever", "medicine_advice": []}]

    def test_single_medicine_is_wrapped_in_a_list(self):
        result = normalize_result([
            {"initial_complaint": "cough", "medicineAdvice": {"Medicine": "Syrup", "Rout": "Oral"}},
        ])

        advice = result[0]["medicine_advice"]
        assert "medicineAdvice" not in result[0]
        assert len(advice) == 1
        assert advice[0]["name"] == "Syrup"
        assert advice[0]["route"] == "Oral"

    def test_other_record_fields_are_kept(self):
        record = {
            "initial_complaint": "headache",
            "diagnosis": {"bp": "120/80"},
            "advice": {"types": ["rest"], "custom": []},
            "medicine_advice": [],
        }

        assert normalize_result([record]) == [record]

    def test_non_dict_records_pass_through(self):
        assert normalize_result(["free text note"]) == ["free text note"]
