"""Tests for monitoring."""
import pytest

from rehearse import monitoring
from rehearse.services.tempo_service import AdaptiveTempoEstimator


def test_start_monitoring(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that the metrics server is started on the given port."""
    ports = []
    monkeypatch.setattr(monitoring, "start_http_server", lambda port: ports.append(port))
    monitoring.start_monitoring(port=9100)
    assert ports == [9100]


def test_discarded_samples_are_counted() -> None:
    """Test that noise samples increment the discard counter."""
    before = monitoring.discarded_tempo_samples._value.get()
    AdaptiveTempoEstimator().record(5, 4, False)
    assert monitoring.discarded_tempo_samples._value.get() == before + 1


if __name__ == "__main__":
    pytest.main([__file__])
