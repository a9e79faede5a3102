from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional
import threading


class ConnectionState(Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    DISCONNECTING = "Disconnecting"


class ErrorKind(Enum):
    NOT_CONNECTED = "Not Connected"
    DUPLICATE_SUBSCRIPTION = "Duplicate Subscription"
    NOT_SUBSCRIBED = "Not Subscribed"
    UNCHANGED_VALUE = "Unchanged Value"
    INVALID_KEY = "Invalid Key"
    DRIVER_ERROR = "Driver Error"


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of a registry or client operation.
    Truthy when the operation was accepted.
    """
    ok: bool
    reason: Optional[ErrorKind] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, message: str = "") -> "OperationResult":
        return cls(True, None, message)

    @classmethod
    def failure(cls, reason: ErrorKind, message: str = "") -> "OperationResult":
        return cls(False, reason, message)


@dataclass(frozen=True)
class SubscriptionOptions:
    """Per-subscription settings handed to the transport driver."""
    raw_type: Optional[str] = None   # PLC datatype name, e.g. "WORD", "STRING(80)"
    raw_size: int = 0                # characters for STRING/WSTRING
    cycle_time: int = 200            # ms (ADS)
    max_delay: int = 0               # ms (ADS)
    qos: int = 0                     # MQTT


@dataclass
class SubscriptionEntry:
    """One watched data point and its last accepted value."""
    key: str
    handle: Any = None
    callback: Optional[Callable[[str, str], None]] = None
    options: SubscriptionOptions = field(default_factory=SubscriptionOptions)
    last_value: str = ""
    subscribed_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None
    sink: Any = None
    active: bool = True
    # Outbound value while a publish is in flight
    publishing: Optional[str] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def raw_type(self) -> Optional[str]:
        return self.options.raw_type

    @property
    def raw_size(self) -> int:
        return self.options.raw_size

    @property
    def logging(self) -> bool:
        return self.sink is not None

    @property
    def time(self) -> str:
        """Update timestamp as used by value sinks."""
        ts = self.updated_at or self.subscribed_at
        return ts.strftime("%Y-%m-%d %H:%M:%S.%f")[:-2]

    def to_dict(self):
        return {
            'key': self.key,
            'raw_type': self.raw_type,
            'raw_size': self.raw_size,
            'last_value': self.last_value,
            'subscribed_at': self.subscribed_at.isoformat(),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'logging': self.logging,
        }
