import pytest

from agriml.crop_model import CROP_FEATURES, CropModel, CropScore, crop_reasons, recommend
from agriml.schemas import HazardType, ModelMode


def test_example_sorted_by_confidence():
    result = recommend({"ph": 6.2, "rainfall": 1200, "temperature": 27})
    assert [rec.crop for rec in result] == ["cassava", "maize", "yam", "sorghum"]
    assert [rec.confidence for rec in result] == [0.85, 0.8, 0.78, 0.75]


def test_single_temperature_predicate():
    result = recommend({"ph": 8.0, "rainfall": 500, "temperature": 27})
    assert result == [CropScore("yam", 0.82, 0.78)]


def test_single_rainfall_predicate():
    result = recommend({"ph": 4.0, "rainfall": 1500, "temperature": 35})
    assert result == [CropScore("cassava", 0.9, 0.85)]


def test_ph_predicate_adds_two_crops():
    result = recommend({"ph": 6.0, "rainfall": 200, "temperature": 10})
    assert result == [CropScore("maize", 0.85, 0.8), CropScore("sorghum", 0.78, 0.75)]


@pytest.mark.parametrize("ph", [5.5, 7.0])
def test_ph_bounds_are_inclusive(ph):
    assert {rec.crop for rec in recommend({"ph": ph})} == {"maize", "sorghum"}


def test_no_predicate_matches():
    assert recommend({"ph": 9.0, "rainfall": 100, "temperature": 40}) == []


def test_missing_inputs_match_nothing():
    assert recommend({}) == []


def test_probabilities_are_not_normalized():
    result = recommend({"ph": 6.2, "rainfall": 1200, "temperature": 27})
    assert sum(rec.probability for rec in result) > 1


def test_reasons():
    reasons = crop_reasons({"temperature": 25, "humidity": 70, "ph": 6.5, "rainfall": 800})
    assert reasons == ["Optimal temperature range", "Suitable humidity levels", "Good soil pH", "Adequate rainfall"]


def test_reasons_fallback():
    assert crop_reasons({"temperature": 40, "humidity": 10}) == ["Based on environmental conditions"]


def test_model_predict_envelope():
    model = CropModel()
    prediction = model.predict({"ph": 6.2, "rainfall": 1200, "temperature": 27, "humidity": 70})
    assert prediction.type is HazardType.CROP
    assert prediction.mode is ModelMode.RULE_BASED
    assert prediction.recommendations[0].crop == "cassava"
    assert prediction.recommendations[0].suitability == 0.9
    assert "Adequate rainfall" in prediction.recommendations[0].reasons
    assert (prediction.timeframe.end_date - prediction.timeframe.start_date).days == 90
    assert prediction.model_info.accuracy == 0.78
    assert prediction.model_info.features == CROP_FEATURES
    assert prediction.model_info.algorithm == "Rule-Based Classification"
