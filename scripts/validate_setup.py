"""Pre-flight validation for API keys, provider config and connectivity."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
import asyncio
import os
import platform
from typing import Any

from dotenv import load_dotenv

from genbridge.config import AIConfig, ProviderType, load_ai_config
from genbridge.errors import GenerationError
from genbridge.providers import create_provider
from genbridge.types import ChatMessage, GenerationParams, GenerationRequest
from genbridge.utils.logging_config import setup_logging


def parse_args() -> argparse.Namespace:
    """Parse CLI options."""
    parser = argparse.ArgumentParser(description="Validate provider setup and connectivity")
    parser.add_argument("--config", type=Path, default=None, help="YAML provider config (default: local runtime only)")
    parser.add_argument("--live", action="store_true", help="Also send a one-word generation to each provider")
    parser.add_argument("--log-dir", type=Path, default=Path("logs/validate"))
    return parser.parse_args()


def check_python() -> str:
    """Return Python-version status message."""
    if sys.version_info < (3, 10):
        return "Warning: Python 3.10+ is required."
    return "Python version is compatible (3.10+)."


def check_env() -> dict[str, bool]:
    """Report which provider credentials are present in the environment."""
    return {
        "openai_key_present": bool(os.getenv("OPENAI_API_KEY")),
        "anthropic_key_present": bool(os.getenv("ANTHROPIC_API_KEY")),
        "ollama_host_set": bool(os.getenv("OLLAMA_HOST")),
    }


async def validate_providers(config: AIConfig, *, live: bool, logger) -> dict[str, dict[str, Any]]:
    """Build every enabled provider, health-check it and optionally generate."""
    status: dict[str, dict[str, Any]] = {}

    for kind in config.enabled_providers():
        provider_config = config.providers[kind]
        bucket: dict[str, Any] = {"default_model": provider_config.default_model, "ok": False}
        status[kind.value] = bucket

        try:
            provider = await create_provider(kind, provider_config)
        except GenerationError as exc:
            bucket["error"] = f"{exc.category}: {exc.message}"
            logger.warning("Could not create %s provider: %s", kind, exc.message)
            continue

        try:
            bucket["healthy"] = await provider.health_check()
            bucket["ok"] = bucket["healthy"]
            if live and bucket["healthy"]:
                response = await provider.generate(
                    GenerationRequest(
                        messages=[
                            ChatMessage.system("You are a connectivity test assistant."),
                            ChatMessage.user("Return the single word OK."),
                        ],
                        model=provider.default_model,
                        params=GenerationParams(temperature=0.0, max_tokens=8),
                    )
                )
                bucket["reply"] = response.content.strip()
                bucket["response_time_ms"] = response.response_time_ms
                bucket["ok"] = bool(bucket["reply"])
        except GenerationError as exc:
            bucket["ok"] = False
            bucket["error"] = f"{exc.category}: {exc.user_message}"
            logger.warning("%s validation failed: %s", kind, exc.message)
        finally:
            await provider.close()

    return status


def main() -> None:
    """CLI entry point."""
    load_dotenv()
    args = parse_args()
    logger, log_path = setup_logging(log_dir=args.log_dir, name="validate_setup")

    config = load_ai_config(config_path=args.config)
    status = asyncio.run(validate_providers(config, live=args.live, logger=logger))

    print("Validation complete")
    print(f"Platform: {platform.platform()}")
    print(check_python())
    print(f"Environment: {check_env()}")
    print(f"Default provider: {config.default_provider}")
    for name, bucket in status.items():
        print(f"  {ProviderType.parse(name).display_name}: {bucket}")
    print(f"Log file: {log_path}")

    if not all(bucket["ok"] for bucket in status.values()):
        sys.exit(1)


if __name__ == "__main__":
    main()
