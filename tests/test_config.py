import pytest

from gluematch.config import Configuration, ExtractorType


def test_defaults_match_documented_values():
    cfg = Configuration()
    assert cfg.image_size == 512
    assert cfg.threshold == 0.0
    assert cfg.is_end_to_end is True
    assert cfg.gray_scale is False
    assert cfg.viz is False


def test_extractor_type_string_is_coerced():
    cfg = Configuration(extractor_type="disk")
    assert cfg.extractor_type is ExtractorType.DISK


def test_extractor_type_compares_with_plain_string():
    cfg = Configuration(extractor_type=ExtractorType.SUPERPOINT)
    assert cfg.extractor_type == "superpoint"


def test_unknown_extractor_type_rejected():
    with pytest.raises(ValueError):
        Configuration(extractor_type="orb")


def test_from_mapping_sets_fields():
    cfg = Configuration.from_mapping(
        {
            "lightglue_path": "models/matcher.onnx",
            "extractor_path": "models/extractor.onnx",
            "extractor_type": "disk",
            "image_size": "1024",
            "threshold": "0.5",
            "device": "cuda",
        }
    )
    assert cfg.lightglue_path == "models/matcher.onnx"
    assert cfg.extractor_path == "models/extractor.onnx"
    assert cfg.extractor_type is ExtractorType.DISK
    assert cfg.image_size == 1024
    assert cfg.threshold == 0.5
    assert cfg.device == "cuda"


def test_from_mapping_rejects_unknown_keys():
    with pytest.raises(ValueError, match="bogus"):
        Configuration.from_mapping({"bogus": 1})


def test_from_mapping_empty_gives_defaults():
    assert Configuration.from_mapping({}) == Configuration()