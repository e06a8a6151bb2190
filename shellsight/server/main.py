#!/usr/bin/env python3
"""
ShellSight Server - Main Application

Serves recording listings and streams terminal session replays to
browser clients over WebSocket.
"""

import argparse
import logging
import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

import uvicorn
import yaml

from shellsight.server.api import create_app
from shellsight.server.storage import RecordingLibrary, StorageConfig, apply_storage_overrides
from shellsight.shared import coerce_speed

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    default_speed: float = 1.0
    log_level: str = "INFO"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


class ShellSightServer:
    """Main server application."""

    def __init__(self, config_path: str):
        self.config = self._load_config(config_path)

        self.server_config = self._parse_server_config(self.config)
        self.storage_config = apply_storage_overrides(
            self._parse_storage_config(self.config.get("storage", {}))
        )

        self.library = RecordingLibrary.from_config(self.storage_config)

        # FastAPI app
        self.app = create_app(
            library=self.library,
            storage_config=self.storage_config,
            default_speed=self.server_config.default_speed,
        )

    def _load_config(self, config_path: str) -> dict:
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return {}

        with open(config_file) as f:
            config = yaml.safe_load(f)

        logger.info(f"Loaded configuration from {config_path}")
        return config or {}

    def _parse_server_config(self, config: dict) -> ServerConfig:
        server = config.get("server", {})
        replay = config.get("replay", {})
        log_level = config.get("logging", {}).get("level", "INFO")
        if _env_flag("DEBUG"):
            log_level = "DEBUG"

        return ServerConfig(
            host=os.environ.get("HOST", server.get("host", "0.0.0.0")),
            port=int(os.environ.get("PORT", server.get("port", 3001))),
            default_speed=coerce_speed(replay.get("default_speed", 1.0)),
            log_level=log_level.upper(),
        )

    def _parse_storage_config(self, storage: dict) -> StorageConfig:
        """Storage settings from YAML, overridden by the deployment environment."""
        defaults = StorageConfig()
        config_dir = os.environ.get("CONFIG_DIR")

        config_file = storage.get("config_file", defaults.config_file)
        if config_dir:
            config_file = str(Path(config_dir) / "storage-config.json")

        per_user = storage.get("per_user", defaults.per_user)
        if "SHELLSIGHT_PER_USER" in os.environ:
            per_user = _env_flag("SHELLSIGHT_PER_USER")

        return StorageConfig(
            backend=storage.get("backend", defaults.backend),
            root_dir=storage.get("root_dir", defaults.root_dir),
            bucket=os.environ.get("S3_BUCKET", storage.get("bucket", defaults.bucket)),
            prefix=os.environ.get("S3_PREFIX", storage.get("prefix", defaults.prefix)),
            per_user=bool(per_user),
            config_file=config_file,
        )

    def start(self):
        """Configure logging and report what will be served."""
        logging.basicConfig(
            level=getattr(logging, self.server_config.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting ShellSight Server")
        logger.info(f"  - Storage backend: {self.storage_config.backend}")
        logger.info(f"  - Bucket: {self.storage_config.bucket_path}")
        logger.info(f"  - Prefix: {self.storage_config.prefix or '(none)'}")
        logger.info(f"  - Per-user namespaces: {self.storage_config.per_user}")
        return True

    def stop(self):
        logger.info("ShellSight Server stopped")

    def run(self):
        """Run the server."""
        if not self.start():
            sys.exit(1)

        try:
            uvicorn.run(
                self.app,
                host=self.server_config.host,
                port=self.server_config.port,
                log_level=self.server_config.log_level.lower(),
            )
        finally:
            self.stop()


def main():
    parser = argparse.ArgumentParser(description="ShellSight Server")
    parser.add_argument(
        "-c", "--config",
        default="config/config.yaml",
        help="Path to configuration file",
    )

    args = parser.parse_args()

    server = ShellSightServer(args.config)

    # Handle signals
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        server.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    server.run()


if __name__ == "__main__":
    main()
