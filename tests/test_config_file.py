#!/usr/bin/env python3
"""Tests for [multifit] settings from TOML files."""

import pytest

from sinefit.io import load_fit_config, parse_multifit_table
from sinefit.fitting import ModelVariant, InvalidConfiguration, FitSession


MULTIFIT = """\
[scope]
decimation = 8

[multifit]
samples_skip_start = 1000
samples_skip_end = 1000
skip_rate = 16
max_iterations = 32
xtol = 1e-8
gtol = 1e-8
ftol = 1e-8
max_av_ratio = 1.5
"""


def base_table(**overrides):
    table = {
        'samples_skip_start': 1000,
        'samples_skip_end': 1000,
        'skip_rate': 16,
        'max_iterations': 32,
        'xtol': 1e-8,
        'gtol': 1e-8,
        'ftol': 1e-8,
        'max_av_ratio': 1.5,
    }
    table.update(overrides)
    return table


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "rp.toml"
    path.write_text(MULTIFIT)
    return path


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def test_load_multifit_table(config_path):
    settings = load_fit_config(config_path)
    cfg = settings.fit_config

    assert cfg.variant is ModelVariant.AMPLITUDE_PHASE
    assert cfg.num_points == 899
    assert cfg.skip_rate == settings.skip_rate == 16
    assert cfg.max_iterations == 32
    assert cfg.xtol == cfg.gtol == cfg.ftol == 1e-8
    assert cfg.max_av_ratio == 1.5
    assert settings.samples_skip_start == 1000
    assert settings.samples_skip_end == 1000
    assert settings.buffer_size == 16384
    assert settings.initial_guess is None


def test_loaded_config_creates_session(config_path):
    settings = load_fit_config(config_path)
    with FitSession(settings.fit_config) as session:
        assert session.num_points == 899
        assert session.model.skip_rate == 16


def test_optional_keys(tmp_path):
    path = tmp_path / "chirp.toml"
    path.write_text(MULTIFIT + (
        'buffer_size = 4096\n'
        'low_contrast_threshold = 25\n'
        'model = "chirp"\n'
        'guess = [500, -700, 2.02e-3, 0, 2000]\n'
    ))
    settings = load_fit_config(path)

    assert settings.fit_config.variant is ModelVariant.CHIRP
    assert settings.buffer_size == 4096
    assert settings.fit_config.num_points == (4096 - 2000 + 15) // 16
    assert settings.fit_config.low_contrast_threshold == 25.0
    assert settings.initial_guess == [500.0, -700.0, 2.02e-3, 0.0, 2000.0]


def test_integer_tolerance_accepted():
    settings = parse_multifit_table(base_table(max_av_ratio=2))
    assert settings.fit_config.max_av_ratio == 2.0


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

def test_missing_file(tmp_path):
    with pytest.raises(InvalidConfiguration, match="not found"):
        load_fit_config(tmp_path / "missing.toml")


def test_malformed_toml(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("[multifit\nskip_rate = 16\n")
    with pytest.raises(InvalidConfiguration, match="Error reading"):
        load_fit_config(path)


def test_missing_table(tmp_path):
    path = tmp_path / "other.toml"
    path.write_text("[scope]\ndecimation = 8\n")
    with pytest.raises(InvalidConfiguration, match=r"No \[multifit\] table"):
        load_fit_config(path)


@pytest.mark.parametrize("key", [
    'samples_skip_start', 'samples_skip_end', 'skip_rate',
    'max_iterations', 'xtol', 'gtol', 'ftol', 'max_av_ratio',
])
def test_missing_required_key(key):
    table = base_table()
    del table[key]
    with pytest.raises(InvalidConfiguration, match=f"Missing key '{key}'"):
        parse_multifit_table(table)


@pytest.mark.parametrize("overrides", [
    dict(skip_rate=16.0),
    dict(skip_rate=True),
    dict(xtol="1e-8"),
    dict(model=3),
    dict(guess="1,2,3,4"),
])
def test_wrong_types(overrides):
    with pytest.raises(InvalidConfiguration, match="must be"):
        parse_multifit_table(base_table(**overrides))


@pytest.mark.parametrize("overrides", [
    dict(samples_skip_start=-1),
    dict(skip_rate=0),
    dict(samples_skip_start=9000, samples_skip_end=9000),
    dict(max_iterations=0),
    dict(xtol=0.0),
    dict(model="sawtooth"),
    dict(guess=[1.0, 2.0]),
    dict(guess=[1.0, "a", 0.0, 0.0]),
])
def test_invalid_values(overrides):
    with pytest.raises(InvalidConfiguration):
        parse_multifit_table(base_table(**overrides))
