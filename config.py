"""
Configuration management for the COD console service.

Loads environment variables from .env file and provides process-level settings.
Backend selection and credentials live in infra.config.InfraConfig.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

from infra.config import get_config

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)


class Config:
    """Application-level configuration."""

    # Server
    APP_PORT = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    @classmethod
    def validate(cls) -> bool:
        """Validate that required backend configuration is set."""
        missing = get_config().missing_credentials()

        if missing:
            print(f"⚠️  Missing required environment variables: {', '.join(missing)}")
            print(f"   Please set them in .env file")
            return False

        return True


if __name__ == "__main__":
    # Test configuration loading
    infra = get_config()
    print("Configuration loaded:")
    print(f"  WhatsApp Backend: {infra.whatsapp_backend}")
    print(f"  Store Backend: {infra.store_backend}")
    print(f"  Push Backend: {infra.push_backend}")
    print(f"  App Port: {Config.APP_PORT}")
    print(f"  Environment: {Config.ENVIRONMENT}")
    print(f"\n  Validation: {'✓ PASSED' if Config.validate() else '✗ FAILED'}")
