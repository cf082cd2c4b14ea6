# tests/test_config.py

import pytest

from stock_gru.config.config import Config, DataConfig, LabelLayout, load_config


def test_defaults():
    cfg = Config()
    assert cfg.data.window_size == 12
    assert cfg.data.prediction_horizon == 3
    assert cfg.data.train_ratio == 0.8
    assert cfg.data.label_layout is LabelLayout.SYMBOL_MAJOR
    assert cfg.model.gru_units == 64
    assert cfg.training.batch_size == 32
    assert cfg.experiment.model_name == "gru-stock-model"


def test_layout_string_is_coerced():
    assert DataConfig(label_layout="day_major").label_layout is LabelLayout.DAY_MAJOR
    with pytest.raises(ValueError):
        DataConfig(label_layout="diagonal")


def test_load_config_sections(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "data:\n"
        "  window_size: 20\n"
        "  label_layout: day_major\n"
        "model:\n"
        "  gru_units: 32\n"
        "training:\n"
        "  epochs: 5\n"
        "  optimizer: adamw\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.data.window_size == 20
    assert cfg.data.prediction_horizon == 3
    assert cfg.data.label_layout is LabelLayout.DAY_MAJOR
    assert cfg.model.gru_units == 32
    assert cfg.training.epochs == 5
    assert cfg.training.optimizer == "adamw"
    assert cfg.experiment.seed == 42


def test_empty_config_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == Config()


def test_unknown_key_is_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("training:\n  epoch: 5\n", encoding="utf-8")
    with pytest.raises(ValueError, match="epoch"):
        load_config(path)


def test_unknown_section_is_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("optimizer:\n  lr: 0.1\n", encoding="utf-8")
    with pytest.raises(ValueError, match="optimizer"):
        load_config(path)


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_model_section_has_no_activation_setting(tmp_path):
    path = tmp_path / "model.yaml"
    path.write_text("model:\n  gru_units: 16\n  activation: relu\n", encoding="utf-8")
    with pytest.raises(ValueError, match="activation"):
        load_config(path)
