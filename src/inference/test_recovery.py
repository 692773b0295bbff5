"""Tests for parameter-recovery tables."""

import numpy as np
import pytest
import arviz as az

from inference.recovery import parameter_recovery, RecoveryReport


def make_idata(seed: int = 0):
    rng = np.random.default_rng(seed)
    return az.from_dict(posterior={
        "beta": rng.normal(loc=[1.0, -1.0, 0.0], scale=0.1, size=(2, 500, 3)),
        "sigma": rng.normal(loc=2.0, scale=0.05, size=(2, 500)),
    })


def test_recovery_table_columns_and_rows():
    table = parameter_recovery(make_idata(), {"beta": [1.0, -1.0, 0.0], "sigma": 2.0})
    assert list(table.columns) == [
        "parameter", "index", "true", "mean", "sd", "lower", "upper", "covered", "error",
    ]
    assert len(table) == 4
    assert list(table["parameter"]) == ["beta", "beta", "beta", "sigma"]


def test_true_values_covered():
    table = parameter_recovery(make_idata(), {"beta": [1.0, -1.0, 0.0], "sigma": 2.0}, prob=0.9)
    assert table["covered"].all()
    assert np.all(np.abs(table["error"]) < 0.05)
    assert np.all(table["lower"] < table["upper"])


def test_wrong_values_not_covered():
    table = parameter_recovery(make_idata(), {"beta": [3.0, -1.0, 0.0]})
    assert list(table["covered"]) == [False, True, True]
    assert table.loc[0, "error"] == pytest.approx(-2.0, abs=0.05)


def test_interval_width_grows_with_prob():
    idata = make_idata()
    narrow = parameter_recovery(idata, {"sigma": 2.0}, prob=0.5)
    wide = parameter_recovery(idata, {"sigma": 2.0}, prob=0.95)
    assert (wide["upper"] - wide["lower"]).item() > (narrow["upper"] - narrow["lower"]).item()


def test_size_mismatch_raises():
    with pytest.raises(ValueError, match="elements"):
        parameter_recovery(make_idata(), {"beta": [1.0, 2.0]})


def test_unknown_variable_raises():
    with pytest.raises(ValueError, match="not found"):
        parameter_recovery(make_idata(), {"gamma": 1.0})


def test_invalid_prob_raises():
    with pytest.raises(ValueError, match="prob"):
        parameter_recovery(make_idata(), {"sigma": 2.0}, prob=1.0)


def test_report_aggregates():
    report = RecoveryReport.from_idata(make_idata(), {"beta": [3.0, -1.0, 0.0], "sigma": 2.0})
    assert report.coverage == pytest.approx(0.75)

    by_param = report.by_parameter()
    assert list(by_param.index) == ["beta", "sigma"]
    assert by_param.loc["beta", "coverage"] == pytest.approx(2 / 3)
    assert by_param.loc["beta", "n"] == 3
    assert by_param.loc["beta", "rmse"] > by_param.loc["sigma", "rmse"]


def test_report_passed_threshold():
    report = RecoveryReport.from_idata(make_idata(), {"beta": [3.0, -1.0, 0.0], "sigma": 2.0})
    assert report.passed(min_coverage=0.7)
    assert not report.passed(min_coverage=0.9)