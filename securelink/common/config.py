"""
Runtime configuration using Pydantic.

Values come from SECURELINK_* environment variables (a .env file is loaded
first) and can be overridden by command-line flags.
"""

import os
from typing import Optional, Literal
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .protocol import DEFAULT_HOST, DEFAULT_PORT, Framing


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

ENV_PREFIX = "SECURELINK_"


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _collect_env(names: dict) -> dict:
    """Map ENV_NAME -> field name, keeping only variables that are set."""
    values = {}
    for env_name, field_name in names.items():
        value = _env(env_name)
        if value is not None:
            values[field_name] = value
    return values


class _Settings(BaseModel):
    log_level: LogLevel = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class ServerConfig(_Settings):
    """Settings for the echo server."""
    host: str = Field("0.0.0.0", description="Interface to bind")
    port: int = Field(DEFAULT_PORT, ge=0, le=65535, description="Listening port (0 picks a free one)")
    cert_path: str = Field("server.crt", description="PEM certificate chain")
    key_path: str = Field("server.key", description="PEM private key")
    framing: Framing = Field(Framing.LINE, description="How inbound bytes are split into messages")
    handshake_timeout: Optional[float] = Field(10.0, gt=0, description="Seconds allowed for a client handshake")
    backlog: int = Field(128, gt=0, description="Listen queue length")

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """Build from the environment; keyword overrides that are not None win."""
        load_dotenv()
        values = _collect_env({
            "HOST": "host",
            "PORT": "port",
            "CERT_PATH": "cert_path",
            "KEY_PATH": "key_path",
            "FRAMING": "framing",
            "HANDSHAKE_TIMEOUT": "handshake_timeout",
            "BACKLOG": "backlog",
            "LOG_LEVEL": "log_level",
        })
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class ClientConfig(_Settings):
    """Settings for the chat client."""
    host: str = Field(DEFAULT_HOST, description="Server host name or address")
    port: int = Field(DEFAULT_PORT, ge=1, le=65535, description="Server port")
    ca_path: Optional[str] = Field(None, description="CA bundle to trust instead of the system roots")
    connect_timeout: Optional[float] = Field(10.0, gt=0, description="Seconds allowed for connect + handshake")
    log_level: LogLevel = "WARNING"

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """Build from the environment; keyword overrides that are not None win."""
        load_dotenv()
        values = _collect_env({
            "HOST": "host",
            "PORT": "port",
            "CA_PATH": "ca_path",
            "CONNECT_TIMEOUT": "connect_timeout",
            "LOG_LEVEL": "log_level",
        })
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
