"""Test configuration reading from multiple sources."""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

from finagent.configs import config as config_module
from finagent.configs.config import AppConfig


class TestConfigSources:
    """Test configuration loading from multiple sources."""

    def test_configmap_overrides_static_yaml_and_env(self):
        with tempfile.TemporaryDirectory() as tmp:
            configmap = Path(tmp) / "config.yaml"
            configmap.write_text(
                "chat:\n  max_history_messages: 3\nrelay:\n  replay_traces: 7\n"
            )
            env_vars = {"FINAGENT_CHAT__MAX_HISTORY_MESSAGES": "9"}

            with (
                patch.object(config_module, "CONFIGMAP_CONFIG_FILE", configmap),
                patch.dict(os.environ, env_vars, clear=False),
            ):
                config = AppConfig()

        assert config.chat.max_history_messages == 3
        assert config.relay.replay_traces == 7
        # Untouched sections still come from the static file.
        assert config.relay.channel == "sse:chat:stream"

    def test_missing_configmap_file_is_ignored(self):
        with patch.object(
            config_module, "CONFIGMAP_CONFIG_FILE", Path("/nonexistent/config.yaml")
        ):
            config = AppConfig()

        assert config.chat.max_history_messages == 20
