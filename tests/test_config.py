from answerprep.config import Settings


def test_defaults_are_valid():
    assert Settings.validate() == []


def test_validate_reports_bad_values(monkeypatch):
    monkeypatch.setattr(Settings, "ANSWER_SECONDS", 0)
    monkeypatch.setattr(Settings, "TICK_SECONDS", -1.0)
    problems = Settings.validate()
    assert "ANSWER_SECONDS must be positive" in problems
    assert "TICK_SECONDS must be positive" in problems


def test_negative_grace_period_is_reported(monkeypatch):
    monkeypatch.setattr(Settings, "SESSION_GRACE_SECONDS", -1.0)
    assert "SESSION_GRACE_SECONDS must not be negative" in Settings.validate()
