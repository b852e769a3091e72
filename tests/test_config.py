import pytest

from groupmatch.config import MatchingConfig, MatchingConfigError, load_matching_config


def test_default_config_is_valid():
    cfg = MatchingConfig()
    assert cfg.validate() == []
    assert sum(cfg.weights.values()) == pytest.approx(1.0)
    assert cfg.target_size == 3
    assert cfg.cooldown_mode == "hard"


def test_weights_must_sum_to_one():
    with pytest.raises(MatchingConfigError) as exc:
        MatchingConfig(specialty_weight=0.9)
    assert any("sum to 1.0" in p for p in exc.value.problems)


def test_negative_weight_rejected():
    with pytest.raises(MatchingConfigError) as exc:
        MatchingConfig(specialty_weight=-0.1, location_weight=0.55)
    assert any("specialty_weight" in p for p in exc.value.problems)


def test_inconsistent_group_sizes_rejected():
    with pytest.raises(MatchingConfigError):
        MatchingConfig(target_size=3, min_size=4)
    with pytest.raises(MatchingConfigError):
        MatchingConfig(target_size=4, max_size=3)


def test_unknown_modes_rejected_together():
    with pytest.raises(MatchingConfigError) as exc:
        MatchingConfig(cooldown_mode="sometimes", specialty_policy="random")
    assert len(exc.value.problems) == 2


def test_from_mapping_accepts_env_style_keys():
    cfg = MatchingConfig.from_mapping(
        {
            "TARGET_GROUP_SIZE": 4,
            "MAX_GROUP_SIZE": 5,
            "COOLDOWN_MODE": "soft",
            "COOLDOWN_PENALTY": 0.25,
            "UNRELATED_KEY": "ignored",
        }
    )
    assert cfg.target_size == 4
    assert cfg.max_size == 5
    assert cfg.cooldown_mode == "soft"
    assert cfg.cooldown_penalty == 0.25


def test_from_mapping_accepts_field_names():
    cfg = MatchingConfig.from_mapping({"require_paid": False, "score_workers": 2})
    assert cfg.require_paid is False
    assert cfg.score_workers == 2


def test_load_matching_config_from_dict():
    cfg = load_matching_config({"ABSORB_REMAINDER": True})
    assert cfg.absorb_remainder is True
    assert cfg.as_dict()["absorb_remainder"] is True


def test_from_mapping_coerces_json_strings():
    cfg = MatchingConfig.from_mapping(
        {"TARGET_GROUP_SIZE": "3", "SPECIALTY_W": "0.25", "ABSORB_REMAINDER": "true", "SCORE_WORKERS": " 2 "}
    )
    assert cfg.target_size == 3
    assert cfg.specialty_weight == 0.25
    assert cfg.absorb_remainder is True
    assert cfg.score_workers == 2


def test_unparseable_values_raise_config_error():
    with pytest.raises(MatchingConfigError) as exc:
        MatchingConfig.from_mapping({"TARGET_GROUP_SIZE": "three", "ABSORB_REMAINDER": "maybe"})
    assert any("target_size must be int" in p for p in exc.value.problems)
    assert any("absorb_remainder must be bool" in p for p in exc.value.problems)


def test_wrong_types_passed_directly_raise_config_error():
    with pytest.raises(MatchingConfigError) as exc:
        MatchingConfig(target_size="3", min_size=True)
    assert len(exc.value.problems) == 2
