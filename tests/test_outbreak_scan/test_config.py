"""
Tests for Configuration Management
"""

from outbreak_scan.config import ScanConfig


def test_config_has_required_attributes():
    """Test that ScanConfig has all required attributes."""
    assert hasattr(ScanConfig, 'DEFAULT_MCSIM')
    assert hasattr(ScanConfig, 'RANDOM_SEED')
    assert hasattr(ScanConfig, 'WORKERS')
    assert hasattr(ScanConfig, 'PARALLEL_BACKEND')
    assert hasattr(ScanConfig, 'GUMBEL_METHOD')


def test_config_defaults_are_valid():
    """Test that the shipped defaults pass validation."""
    assert ScanConfig.validate() is True


def test_config_validate_rejects_bad_values(monkeypatch):
    """Test validation of out-of-range settings."""
    monkeypatch.setattr(ScanConfig, "WORKERS", 0)
    monkeypatch.setattr(ScanConfig, "GUMBEL_METHOD", "Bayes")

    assert ScanConfig.validate() is False


def test_config_summary():
    """Test getting configuration summary."""
    summary = ScanConfig.summary()

    assert "monte_carlo" in summary
    assert "parallel" in summary
    assert summary["significance"]["gumbel_method"] == ScanConfig.GUMBEL_METHOD
    assert summary["log_level"] == ScanConfig.LOG_LEVEL


def test_config_choices_cover_defaults():
    """The shipped backend and Gumbel method are among the accepted choices."""
    assert "process" in ScanConfig.PARALLEL_BACKENDS
    assert "thread" in ScanConfig.PARALLEL_BACKENDS
    assert ScanConfig.GUMBEL_METHODS == ("ML", "MoM")


def test_config_validate_rejects_lowercase_method(monkeypatch):
    """Method names are case sensitive."""
    monkeypatch.setattr(ScanConfig, "GUMBEL_METHOD", "ml")

    assert ScanConfig.validate() is False
