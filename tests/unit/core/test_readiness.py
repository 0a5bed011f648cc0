"""
Unit Tests for the readiness gate
"""

import pytest

from voicelink.core.readiness import ReadinessSnapshot, is_ready, missing_requirements


def ready(**overrides) -> ReadinessSnapshot:
    values = dict(api_key="sk-test", channel_state="OPEN", is_authenticated=True,
                  authentication_pending=False, transcription_ready=True)
    values.update(overrides)
    return ReadinessSnapshot(**values)


class TestReadinessGate:
    """Test each readiness requirement"""

    def test_all_signals_ready(self):
        assert is_ready(ready())
        assert missing_requirements(ready()) == []

    def test_default_snapshot_is_not_ready(self):
        """Test a fresh client fails every check"""
        assert missing_requirements(ReadinessSnapshot()) == [
            "api_key", "channel_open", "authenticated", "transcription_ready"
        ]

    @pytest.mark.parametrize("api_key", [None, "", "   "])
    def test_blank_api_key(self, api_key):
        """Test missing or whitespace-only keys close the gate"""
        snapshot = ready(api_key=api_key)

        assert not is_ready(snapshot)
        assert missing_requirements(snapshot) == ["api_key"]

    @pytest.mark.parametrize("channel_state", ["CLOSED", "CONNECTING", "open"])
    def test_channel_must_be_open(self, channel_state):
        assert missing_requirements(ready(channel_state=channel_state)) == ["channel_open"]

    def test_pending_authentication_blocks(self):
        """Test authenticated-but-pending counts as unauthenticated"""
        assert missing_requirements(ready(authentication_pending=True)) == ["authenticated"]

    def test_unauthenticated_blocks(self):
        assert not is_ready(ready(is_authenticated=False))

    def test_transcription_backend_must_be_ready(self):
        assert missing_requirements(ready(transcription_ready=False)) == ["transcription_ready"]
