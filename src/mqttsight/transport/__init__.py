"""
Broker transport package.

Wraps the MQTT client library and re-delivers its callbacks on the asyncio
event loop thread.
"""

from mqttsight.transport.mqtt import MqttTransport

__all__ = ["MqttTransport"]
