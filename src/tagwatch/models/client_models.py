from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any

from tagwatch.models.subscription_models import SubscriptionOptions


class ClientType(Enum):
    MQTT = "MQTT Broker"
    ADS = "Beckhoff ADS"
    UNKNOWN = "Unknown"


@dataclass
class SubscriptionSpec:
    """A subscription applied automatically when its client connects."""
    key: str
    datatype: Optional[str] = None
    size: int = 0
    cycle_time: int = 200
    max_delay: int = 0
    qos: int = 0
    logging: bool = False

    def to_options(self) -> SubscriptionOptions:
        return SubscriptionOptions(
            raw_type=self.datatype,
            raw_size=self.size,
            cycle_time=self.cycle_time,
            max_delay=self.max_delay,
            qos=self.qos,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'datatype': self.datatype,
            'size': self.size,
            'cycle_time': self.cycle_time,
            'max_delay': self.max_delay,
            'qos': self.qos,
            'logging': self.logging
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SubscriptionSpec':
        return cls(
            key=data['key'],
            datatype=data.get('datatype'),
            size=data.get('size', 0),
            cycle_time=data.get('cycle_time', 200),
            max_delay=data.get('max_delay', 0),
            qos=data.get('qos', 0),
            logging=data.get('logging', False)
        )


@dataclass
class ClientConfig:
    """Configuration required to connect a client."""
    name: str
    client_type: ClientType = ClientType.MQTT
    host: str = "127.0.0.1"
    port: Optional[int] = None  # 1883 for MQTT, 851 for ADS
    enabled: bool = True
    description: str = ""

    # MQTT-specific parameters
    username: str = ""
    password: str = ""
    protocol: str = "mqtt"  # mqtt | ws

    # ADS-specific parameters
    ams_net_id: str = "127.0.0.1.1.1"
    add_route: bool = False

    subscriptions: List[SubscriptionSpec] = field(default_factory=list)

    def __post_init__(self):
        if self.port is None:
            self.port = 851 if self.client_type == ClientType.ADS else 1883

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'client_type': self.client_type.value,
            'host': self.host,
            'port': self.port,
            'enabled': self.enabled,
            'description': self.description,
            'username': self.username,
            'password': self.password,
            'protocol': self.protocol,
            'ams_net_id': self.ams_net_id,
            'add_route': self.add_route,
            'subscriptions': [s.to_dict() for s in self.subscriptions]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConfig':
        # Handle Enum conversion
        client_type = ClientType.UNKNOWN
        for ct in ClientType:
            if ct.value == data.get('client_type') or ct.name == data.get('client_type'):
                client_type = ct
                break

        config = cls(
            name=data['name'],
            client_type=client_type,
            host=data.get('host', "127.0.0.1"),
            port=data.get('port'),
            enabled=data.get('enabled', True),
            description=data.get('description', ""),
            username=data.get('username', ""),
            password=data.get('password', ""),
            protocol=data.get('protocol', "mqtt"),
            ams_net_id=data.get('ams_net_id', "127.0.0.1.1.1"),
            add_route=data.get('add_route', False)
        )

        # Load nested objects
        config.subscriptions = [
            SubscriptionSpec.from_dict(s) for s in data.get('subscriptions', [])
        ]

        return config
