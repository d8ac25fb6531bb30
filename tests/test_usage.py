"""
Unit tests for kgengine.usage

The HTTP signal is tested with a mocked requests session.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from kgengine.errors import UsageSignalUnavailable
from kgengine.usage import HttpUsageSignal, StaticUsageSignal, Usage


class TestStaticUsageSignal:

    def test_default_is_neutral(self):
        assert StaticUsageSignal().frequency("1", "A", "B") == Usage(0.5)

    def test_custom_default(self):
        assert StaticUsageSignal(default=0.9).frequency("1", "A", "B").frequency == 0.9

    def test_recorded_value_is_directional(self):
        signal = StaticUsageSignal()
        signal.record(1, "A", "B", 0.8, last_used="2024-05-01")
        assert signal.frequency("1", "A", "B") == Usage(0.8, "2024-05-01")
        assert signal.frequency("1", "B", "A").frequency == 0.5

    def test_out_of_range_clamped(self):
        signal = StaticUsageSignal()
        signal.record("1", "A", "B", 1.5)
        signal.record("1", "B", "A", -2)
        assert signal.frequency("1", "A", "B").frequency == 1.0
        assert signal.frequency("1", "B", "A").frequency == 0.0


class TestHttpUsageSignal:

    def setup_method(self):
        self.signal = HttpUsageSignal("http://usage.local/api/", timeout=3)
        self.signal._session = MagicMock()

    def _respond(self, payload):
        response = MagicMock()
        response.json.return_value = payload
        self.signal._session.get.return_value = response
        return response

    def test_reads_frequency(self):
        self._respond({"frequency": 0.75, "lastUsed": "2024-05-01T10:00:00Z"})
        usage = self.signal.frequency("7", "C1", "T1")
        assert usage == Usage(0.75, "2024-05-01T10:00:00Z")
        self.signal._session.get.assert_called_once_with(
            "http://usage.local/api/projects/7/usage",
            params={"from": "C1", "to": "T1"},
            timeout=3,
        )

    def test_out_of_range_clamped(self):
        self._respond({"frequency": 4})
        assert self.signal.frequency("7", "C1", "T1").frequency == 1.0

    def test_connection_error(self):
        self.signal._session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(UsageSignalUnavailable):
            self.signal.frequency("7", "C1", "T1")

    def test_http_error(self):
        response = self._respond({})
        response.raise_for_status.side_effect = requests.HTTPError("503")
        with pytest.raises(UsageSignalUnavailable):
            self.signal.frequency("7", "C1", "T1")

    def test_malformed_body(self):
        self._respond({"usage": "lots"})
        with pytest.raises(UsageSignalUnavailable):
            self.signal.frequency("7", "C1", "T1")

    def test_non_numeric_frequency(self):
        self._respond({"frequency": "often"})
        with pytest.raises(UsageSignalUnavailable):
            self.signal.frequency("7", "C1", "T1")
