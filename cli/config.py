"""Configuration management for the backup daemon."""

import os
import shlex
from datetime import timedelta
from pathlib import Path
from typing import Optional

from cli.constants import CONFIG_TEMPLATE
from cli.duration import parse_duration
from common.constants import DEFAULT_COMPRESSION_LEVEL, DEFAULT_HTTP_TIMEOUT_SECONDS
from common.exceptions import ConfigError

SINGLE_DIRECTIVES = ("webhook", "every", "password", "compression")


class Config:
    """
    Backup configuration read from a directive file.

    The file holds directives (one per line, '#' comments allowed), then a
    shebang line naming the shell, then the backup script itself:

        webhook https://example.com/api/webhooks/1/token
        every 1 day
        #!/bin/sh -e
        cp -r /srv/data .
    """

    DEFAULT_CONFIG = {
        "password": None,
        "compression": DEFAULT_COMPRESSION_LEVEL,
        "timeout": float(os.environ.get("BACKUP_TIMEOUT", DEFAULT_HTTP_TIMEOUT_SECONDS)),
    }

    def __init__(self, config_path: Path):
        """
        Load configuration.

        Args:
            config_path: Path to the directive file

        Raises:
            ConfigError: If the file cannot be read or is invalid
        """
        self.config_path = Path(config_path)
        self.data = self._load()

    def _load(self) -> dict:
        """
        Read and parse the configuration file.

        Returns:
            Configuration dictionary
        """
        try:
            text = self.config_path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"failed to read config file '{self.config_path}': {e}") from e

        config = self.DEFAULT_CONFIG.copy()
        config.update(parse_config(text))
        return config

    def get_webhook_url(self) -> str:
        return self.data["webhook"]

    def get_delay(self) -> timedelta:
        """
        Get the interval between backup runs.

        Returns:
            Delay as a timedelta
        """
        return self.data["every"]

    def get_password(self) -> Optional[str]:
        return self.data.get("password")

    def get_compression_level(self) -> int:
        return self.data.get("compression", DEFAULT_COMPRESSION_LEVEL)

    def get_shell(self) -> list[str]:
        """
        Get the interpreter command for the backup script.

        Returns:
            Command words; the script path is appended as the last argument
        """
        return list(self.data["shell"])

    def get_script(self) -> str:
        return self.data["script"]

    def get_timeout(self) -> float:
        """
        Get HTTP request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get("timeout", DEFAULT_HTTP_TIMEOUT_SECONDS)


def parse_config(text: str) -> dict:
    """
    Parse the directive file format.

    Args:
        text: File contents

    Returns:
        Dictionary with webhook, every, shell, script and any optional
        password/compression entries

    Raises:
        ConfigError: On unknown or repeated directives, invalid values, or a
            missing webhook, every or shell line
    """
    lines = text.splitlines()
    data: dict = {}
    position = 0

    while position < len(lines):
        line = lines[position].strip()
        if line.startswith("#!"):
            break
        position += 1

        if not line or line.startswith("#"):
            continue

        name, _, value = line.partition(" ")
        if name not in SINGLE_DIRECTIVES or not value:
            raise ConfigError(f"failed to parse config: undefined directive '{name}'")
        if name in data:
            raise ConfigError(f"failed to parse config: multiple '{name}' directives")

        if name == "compression":
            data[name] = _parse_compression(value.strip())
        elif name == "every":
            delay = parse_duration(value)
            if delay <= timedelta():
                raise ConfigError("failed to parse config: 'every' must be a positive duration")
            data[name] = delay
        elif name == "webhook":
            data[name] = value.strip()
        else:
            data[name] = value

    if position >= len(lines):
        raise ConfigError("failed to parse config: no shell specified")

    shell = shlex.split(lines[position].strip()[2:])
    if not shell:
        raise ConfigError("failed to parse config: no shell specified")
    data["shell"] = shell
    data["script"] = "".join(f"{line}\n" for line in lines[position + 1:])

    for required in ("webhook", "every"):
        if required not in data:
            raise ConfigError(f"failed to parse config: missing {required} directive")

    return data


def _parse_compression(value: str) -> int:
    try:
        level = int(value)
    except ValueError:
        raise ConfigError("failed to parse config: invalid compression value") from None
    if not 0 <= level <= 9:
        raise ConfigError("failed to parse config: compression must be between 0 and 9")
    return level


def write_template(config_path: Path) -> None:
    """
    Write a commented example configuration.

    Args:
        config_path: Destination path, must not exist

    Raises:
        ConfigError: If the file exists or cannot be written
    """
    try:
        with open(config_path, 'x', encoding='utf-8') as f:
            f.write(CONFIG_TEMPLATE)
    except OSError as e:
        raise ConfigError(f"failed to write to config file '{config_path}': {e}") from e
