"""tagwatch - change-notification clients for MQTT brokers and Beckhoff ADS PLCs."""

__version__ = "1.0.0"
