"""Configuration: broker settings, exchange/queue declarations, supervision targets.

The YAML file has the shape::

    broker:
      host: 127.0.0.1
      user: guest
      password: guest
    exchanges:
      orders:
        type: topic
        options: {durable: true}
    queues:
      orders.worker:
        options: {durable: true}
        binds:
          order.created: orders
        consumer_options: {prefetch_count: 1}
        interpreter: "myapp.interpreters:OrderInterpreter"
    supervisor:
      targets:
        - {queue: orders.worker, count: 2}

Broker settings can also come from ``AMQP_*`` environment variables; values in
the file win.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

ExchangeType = Literal["topic", "direct", "headers", "fanout"]

DEFAULT_CONSUMER_ARGUMENTS: dict[str, Any] = {"x-cancel-on-ha-failover": True}


class BrokerSettings(BaseSettings):
    """Broker connection settings.

    Environment variables use the ``AMQP_`` prefix.
    """

    host: str = Field(default="127.0.0.1", min_length=1)
    port: int = Field(default=5672, ge=1, le=65535)
    user: str | None = None
    password: SecretStr = Field(default=SecretStr(""))
    vhost: str = "/"
    heartbeat: int = Field(default=60, ge=0, le=3600)
    connection_name: str = "amqp-listener"

    model_config = SettingsConfigDict(
        env_prefix="AMQP_",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def url(self) -> str:
        """AMQP URL built from the component fields."""
        if not self.user:
            raise ConfigurationError(
                "Parameter 'user' was not set for AMQP connection."
            )
        user = quote(self.user, safe="")
        password = quote(self.password.get_secret_value(), safe="")
        vhost = quote(self.vhost, safe="")
        return f"amqp://{user}:{password}@{self.host}:{self.port}/{vhost}"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ExchangeOptions(_Frozen):
    passive: bool = False
    durable: bool = True
    auto_delete: bool = False


class ExchangeConfig(_Frozen):
    type: ExchangeType = "topic"
    options: ExchangeOptions = Field(default_factory=ExchangeOptions)


class QueueOptions(_Frozen):
    passive: bool = False
    durable: bool = True
    exclusive: bool = False
    auto_delete: bool = False
    nowait: bool = False


class ConsumerOptions(_Frozen):
    no_local: bool = False
    no_ack: bool = False
    exclusive: bool = False
    nowait: bool = False
    arguments: dict[str, Any] = Field(
        default_factory=lambda: dict(DEFAULT_CONSUMER_ARGUMENTS)
    )
    prefetch_count: int = Field(default=1, ge=0)
    requeue_on_nack: bool = False


class QueueConfig(_Frozen):
    options: QueueOptions = Field(default_factory=QueueOptions)
    arguments: dict[str, Any] | None = None
    binds: dict[str, str] = Field(
        default_factory=dict, description="routing key -> exchange name"
    )
    consumer_options: ConsumerOptions = Field(default_factory=ConsumerOptions)
    interpreter: str | None = Field(
        default=None,
        description="Import string 'module:attribute' overriding the default",
    )


class KeepTarget(_Frozen):
    queue: str = Field(min_length=1)
    count: int = Field(ge=0)


class SupervisorConfig(_Frozen):
    command: list[str] = Field(
        default_factory=lambda: [sys.executable, "-m", "amqp_listener"],
        min_length=1,
        description="Worker invocation; the 'run' sub-command and --queue are appended",
    )
    targets: list[KeepTarget] = Field(default_factory=list)


class ListenerConfig(BaseModel):
    """Complete, read-only configuration loaded once at startup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    exchanges: dict[str, ExchangeConfig] = Field(default_factory=dict)
    queues: dict[str, QueueConfig] = Field(default_factory=dict)
    default_interpreter: str | None = None
    default_exchange: str | None = None
    log_file: str | None = "runtime/logs/amqp.log"
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)

    @model_validator(mode="after")
    def _check_binds(self) -> ListenerConfig:
        for queue, config in self.queues.items():
            for routing_key, exchange in config.binds.items():
                if exchange not in self.exchanges:
                    raise ValueError(
                        f"amqp exchange: {exchange} not found "
                        f"(queue {queue!r}, routing key {routing_key!r})"
                    )
        return self

    def queue(self, name: str) -> QueueConfig:
        """Return the configuration of a listened queue."""
        try:
            return self.queues[name]
        except KeyError:
            raise ConfigurationError(f"amqp queue: {name} not found.") from None

    def exchange(self, name: str) -> ExchangeConfig:
        """Return the configuration of a declared exchange."""
        try:
            return self.exchanges[name]
        except KeyError:
            raise ConfigurationError(f"amqp exchange: {name} not found.") from None


def load_config(path: str | Path) -> ListenerConfig:
    """Load and validate a YAML configuration file.

    Raises:
        ConfigurationError: the file is missing, unreadable, or invalid.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration {path} must be a mapping")
    return parse_config(raw)


def parse_config(data: dict[str, Any]) -> ListenerConfig:
    """Validate an already-parsed configuration mapping."""
    data = dict(data)
    try:
        broker = BrokerSettings(**(data.pop("broker", None) or {}))
        return ListenerConfig.model_validate({**data, "broker": broker})
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
