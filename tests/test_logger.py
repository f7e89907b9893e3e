"""
Logging processor tests
"""
import pytest

from aiproxy.core.logger import mask_credentials, mask_secret


@pytest.mark.unit
class TestMaskCredentials:
    """Credential masking in log events"""

    def test_short_secret_is_fully_hidden(self):
        assert mask_secret("sk-1") == "***"

    def test_long_secret_keeps_prefix(self):
        assert mask_secret("sk-abcdefghijkl") == "sk-a***"

    def test_authorization_header_is_masked(self):
        event = {
            "event": "Forwarding chat completion",
            "headers": {"Authorization": "Bearer sk-abcdefghijkl", "Content-Type": "application/json"},
        }

        masked = mask_credentials(None, "info", event)

        assert masked["headers"]["Authorization"] == "Bear***"
        assert masked["headers"]["Content-Type"] == "application/json"

    def test_api_key_field_is_masked(self):
        masked = mask_credentials(None, "info", {"event": "added", "api_key": "sk-abcdefghijkl"})
        assert masked["api_key"] == "sk-a***"

    def test_other_fields_untouched(self):
        event = {"event": "Upstream responded", "status_code": 200}
        assert mask_credentials(None, "info", dict(event)) == event
