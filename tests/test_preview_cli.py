"""Tests for the preview CLI script."""

import logging

import pytest

from scripts.preview import main


def test_preview_logs_summary(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="scripts.preview"):
        exit_code = main(["85000", "--date", "2025-06-30", "--pay-period", "monthly"])

    assert exit_code == 0
    text = caplog.text
    assert "TAX PREVIEW" in text
    assert "11200.00" in text  # wage tax
    assert "PER PERIOD (monthly, 12 per year)" in text


def test_preview_before_rules_take_effect(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="scripts.preview"):
        exit_code = main(["85000", "--date", "2024-06-30"])

    assert exit_code == 1
    assert "No active wage-tax rule" in caplog.text


def test_preview_rejects_negative_income(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="scripts.preview"):
        assert main(["-100", "--date", "2025-06-30"]) == 1
    assert "non-negative" in caplog.text
