"""
MQTT transport adapter.

paho-mqtt runs its network loop on a background thread. Every callback is
forwarded to the asyncio loop with `call_soon_threadsafe`, so message
handlers, acknowledgements and connection notifications all execute on the
single thread that owns the session state.
"""

import asyncio
import secrets
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt
import structlog
from paho.mqtt.enums import CallbackAPIVersion

from mqttsight.config import BrokerSettings
from mqttsight.core.exceptions import ConnectError, SubscribeError

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[str, bytes, bool], Any]
OfflineHandler = Callable[[str], Any]
PublishCallback = Callable[[bool, Optional[str]], Any]


def make_client_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(3)}"


class MqttTransport:
    """
    Connection, subscription and retained-clear publishing.

    Features:
    - Connect with timeout and optional credentials
    - Subscribe with broker acknowledgement
    - Offline notifications without terminating
    - Clearing retained messages with QoS 1 acknowledgement
    """

    def __init__(self, settings: BrokerSettings, client: Optional[mqtt.Client] = None) -> None:
        self.settings = settings
        self.client_id = make_client_id(settings.client_id_prefix)
        self.client = client or mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=True,
        )
        if settings.username:
            self.client.username_pw_set(settings.username, settings.password)

        self.client.on_connect = self._on_connect
        self.client.on_connect_fail = self._on_connect_fail
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self.client.on_subscribe = self._on_subscribe
        self.client.on_publish = self._on_publish

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected: Optional["asyncio.Future[None]"] = None
        self._subscriptions: Dict[int, "asyncio.Future[None]"] = {}
        self._publishes: Dict[int, PublishCallback] = {}
        self._on_message_handler: Optional[MessageHandler] = None
        self._on_offline_handler: Optional[OfflineHandler] = None
        self._is_connected = False
        self._network_started = False

    def set_handlers(
        self,
        on_message: MessageHandler,
        on_offline: Optional[OfflineHandler] = None,
    ) -> None:
        self._on_message_handler = on_message
        self._on_offline_handler = on_offline

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    async def connect(self) -> None:
        """
        Connect to the broker.

        Raises:
            ConnectError: on refusal, network failure or timeout
        """
        self._loop = asyncio.get_running_loop()
        self._connected = self._loop.create_future()
        settings = self.settings

        logger.info(
            "Connecting to broker",
            host=settings.host,
            port=settings.port,
            client_id=self.client_id,
            username=settings.username,
        )
        try:
            self.client.connect_async(settings.host, settings.port, keepalive=settings.keepalive_seconds)
            self.client.loop_start()
            self._network_started = True
            await asyncio.wait_for(self._connected, timeout=settings.connect_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ConnectError(
                f"Connection timeout: Unable to connect to {settings.host}",
                details={"host": settings.host, "timeout": settings.connect_timeout_seconds},
            ) from e
        except OSError as e:
            raise ConnectError(
                f"Connection error: {e}",
                details={"host": settings.host},
            ) from e

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        """
        Subscribe and wait for the broker's acknowledgement.

        Raises:
            SubscribeError: if the request fails or the broker rejects it
        """
        if self._loop is None:
            raise SubscribeError(f"Error subscribing to {topic}: not connected")

        result, mid = self.client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS or mid is None:
            raise SubscribeError(
                f"Error subscribing to {topic}: {mqtt.error_string(result)}",
                details={"topic": topic},
            )

        future: "asyncio.Future[None]" = self._loop.create_future()
        self._subscriptions[mid] = future
        try:
            await asyncio.wait_for(future, timeout=self.settings.connect_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise SubscribeError(
                f"Error subscribing to {topic}: no acknowledgement",
                details={"topic": topic},
            ) from e
        finally:
            self._subscriptions.pop(mid, None)
        logger.info("Subscribed", topic=topic)

    def clear_retained(self, label: str, on_done: Optional[PublishCallback] = None) -> None:
        """Publish an empty retained message to clear the topic on the broker."""
        logger.debug("Clearing retained message", topic=label)
        info = self.client.publish(label, b"", qos=1, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            error = mqtt.error_string(info.rc)
            logger.error("Error clearing retained message", topic=label, error=error)
            if on_done is not None:
                on_done(False, error)
            return
        if on_done is not None:
            self._publishes[info.mid] = on_done

    async def close(self) -> None:
        """Disconnect and stop the network thread."""
        if not self._network_started:
            return
        self._network_started = False
        self._is_connected = False
        self.client.disconnect()
        # loop_stop joins the network thread
        await asyncio.get_running_loop().run_in_executor(None, self.client.loop_stop)
        logger.info("Disconnected from broker")

    # ------------------------------------------------------------------
    # paho callbacks (network thread) -> event loop
    # ------------------------------------------------------------------

    def _call_in_loop(self, callback: Callable[..., Any], *args: Any) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self._call_in_loop(self._handle_connect, reason_code.is_failure, str(reason_code))

    def _on_connect_fail(self, client: Any, userdata: Any) -> None:
        self._call_in_loop(self._handle_connect, True, "connection failed")

    def _on_disconnect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self._call_in_loop(self._handle_disconnect, str(reason_code))

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        self._call_in_loop(self._handle_message, msg.topic, msg.payload, bool(msg.retain))

    def _on_subscribe(self, client: Any, userdata: Any, mid: int, reason_codes: Any, properties: Any) -> None:
        failed = [str(rc) for rc in reason_codes if rc.is_failure]
        self._call_in_loop(self._handle_subscribe, mid, failed)

    def _on_publish(self, client: Any, userdata: Any, mid: int, reason_code: Any, properties: Any) -> None:
        self._call_in_loop(self._handle_publish, mid, reason_code.is_failure, str(reason_code))

    # ------------------------------------------------------------------
    # Loop-thread handlers
    # ------------------------------------------------------------------

    def _handle_connect(self, failed: bool, reason: str) -> None:
        future = self._connected
        if failed:
            logger.error("Connection refused", reason=reason)
            if future is not None and not future.done():
                future.set_exception(ConnectError(f"Connection refused: {reason}", details={"reason": reason}))
            return

        self._is_connected = True
        logger.info("Connected to broker", host=self.settings.host)
        if future is not None and not future.done():
            future.set_result(None)

    def _handle_disconnect(self, reason: str) -> None:
        was_connected = self._is_connected
        self._is_connected = False
        if not self._network_started or not was_connected:
            return
        logger.warning("Disconnected from broker", reason=reason)
        if self._on_offline_handler is not None:
            self._on_offline_handler(reason)

    def _handle_message(self, topic: str, payload: bytes, retained: bool) -> None:
        if self._on_message_handler is not None:
            self._on_message_handler(topic, payload, retained)

    def _handle_subscribe(self, mid: int, failed: list) -> None:
        future = self._subscriptions.get(mid)
        if future is None or future.done():
            return
        if failed:
            future.set_exception(SubscribeError(
                f"Subscription rejected: {', '.join(failed)}",
                details={"reason_codes": failed},
            ))
        else:
            future.set_result(None)

    def _handle_publish(self, mid: int, failed: bool, reason: str) -> None:
        callback = self._publishes.pop(mid, None)
        if callback is None:
            return
        if failed:
            logger.error("Error clearing retained message", mid=mid, reason=reason)
            callback(False, reason)
        else:
            callback(True, None)
