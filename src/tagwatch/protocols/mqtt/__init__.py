"""
MQTT client built on paho-mqtt (v2 callback API).
"""
from tagwatch.protocols.mqtt.client import MQTTClient
from tagwatch.protocols.mqtt.driver import PahoMqttDriver

__all__ = ['MQTTClient', 'PahoMqttDriver']
