"""
MQTT Sight - live terminal view of an MQTT topic tree.

Subscribes to a broker, filters and masks incoming messages, and keeps a
continuously refreshed table holding the latest payload per topic.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
