import os
import re
import sys
import logging
import yaml
from dotenv import load_dotenv

# Load .env file for secrets (Override ensures local .env takes precedence over shell vars)
load_dotenv(override=True)

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


class ConfigManager:
    _config = None

    @classmethod
    def _load_config(cls):
        if cls._config is None:
            base_path = os.path.dirname(__file__)
            config_path = os.path.join(base_path, "config.yml")
            try:
                with open(config_path, "r") as f:
                    content = f.read()
                # Unset variables interpolate to empty, which YAML reads as null
                content = _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), "").strip(), content)
                cls._config = yaml.safe_load(content) or {}
            except FileNotFoundError:
                logger.error("❌ config.yml not found in callbridge/config/")
                sys.exit(1)
        return cls._config

    @classmethod
    def get(cls, path, default=None):
        """Retrieves a value from the config using dot notation (e.g. 'elevenlabs.agent_id')."""
        config = cls._load_config()
        value = config
        for key in path.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(key)
            if value is None:
                return default
        return value

    # --- Secrets (from .env) ---
    ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")

    @property
    def ELEVENLABS_AGENT_ID(self):
        env_agent = os.getenv("ELEVENLABS_AGENT_ID")
        if env_agent:
            return env_agent
        return self.get("elevenlabs.agent_id")

    @property
    def PAYMENT_ENDPOINT_URL(self):
        explicit = self.get("payments.endpoint_url")
        if explicit:
            return explicit
        if not self.SUPABASE_URL:
            return None
        return f"{self.SUPABASE_URL.rstrip('/')}/functions/v1/process-card-payment"

    @property
    def PUBLIC_URL(self):
        public_url = self.get("twilio.public_url")
        return public_url.strip().rstrip("/") if public_url else ""

    @classmethod
    def get_agent_prompt_template(cls):
        """Loads the collections agent prompt template from file."""
        try:
            base_path = os.path.dirname(__file__)
            file_path = os.path.join(base_path, "agent_prompt.txt")
            with open(file_path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    @classmethod
    def validate(cls):
        """Validates that essential environment variables are set."""
        if not cls.ELEVENLABS_API_KEY:
            logger.error("❌ Missing ELEVENLABS_API_KEY in .env file.")
            sys.exit(1)
        if not cls.SUPABASE_URL:
            logger.warning("⚠️ SUPABASE_URL not set. Payment tool calls will fail until payments.endpoint_url is configured.")


# Singleton Instance for easy import
config = ConfigManager()
