"""D-Bus connection ownership, value conversion and MPRIS constants."""

from typing import Any, Callable, Optional, Sequence

import dbus
from dbus.mainloop.glib import DBusGMainLoop

from lizzy.exceptions import BusConnectionError
from lizzy.logging import get_logger

logger = get_logger(__name__)


DBUS_BUS_NAME = 'org.freedesktop.DBus'
DBUS_OBJECT_PATH = '/org/freedesktop/DBus'
DBUS_INTERFACE = 'org.freedesktop.DBus'
DBUS_LOCAL_PATH = '/org/freedesktop/DBus/Local'
DBUS_LOCAL_INTERFACE = 'org.freedesktop.DBus.Local'
PROPERTIES_INTERFACE = 'org.freedesktop.DBus.Properties'

MPRIS2_BUS_PREFIX = 'org.mpris.MediaPlayer2.'
MPRIS2_OBJECT_PATH = '/org/mpris/MediaPlayer2'
MPRIS2_PLAYER_INTERFACE = 'org.mpris.MediaPlayer2.Player'


def is_mpris_name(name: str) -> bool:
    """Whether a bus name is a well-known MPRIS player name."""
    return name.startswith(MPRIS2_BUS_PREFIX) and len(name) > len(MPRIS2_BUS_PREFIX)


def player_identity(bus_name: str) -> str:
    """Strip the MPRIS prefix, e.g. 'org.mpris.MediaPlayer2.firefox.instance3' -> 'firefox.instance3'."""
    if bus_name.startswith(MPRIS2_BUS_PREFIX):
        return bus_name[len(MPRIS2_BUS_PREFIX):]
    return bus_name


def to_python(value: Any) -> Any:
    """Convert a dbus value (possibly nested) to a native Python type."""
    if isinstance(value, dbus.Boolean):
        return bool(value)
    elif isinstance(value, (dbus.String, dbus.ObjectPath, dbus.Signature)):
        return str(value)
    elif isinstance(value, (dbus.Byte, dbus.UInt16, dbus.UInt32, dbus.UInt64,
                            dbus.Int16, dbus.Int32, dbus.Int64)):
        return int(value)
    elif isinstance(value, dbus.Double):
        return float(value)
    elif isinstance(value, dict):
        return {to_python(k): to_python(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [to_python(v) for v in value]
    return value


def dbus_safe_call(func: Callable, default_return: Any = None, log_errors: bool = True):
    """
    Safely call a blocking D-Bus function with error handling.

    Only used during startup discovery; signal handling never blocks.

    Args:
        func: Function to call
        default_return: Value to return on error
        log_errors: Whether to log errors

    Returns:
        Function result or default_return on error
    """
    try:
        return func()
    except dbus.exceptions.DBusException as e:
        if log_errors:
            logger.debug("D-Bus error in safe call: %s", e.get_dbus_name() or e)
        return default_return


class BusConnection:
    """Owns the single session-bus connection shared by every component."""

    def __init__(self, bus: Optional[dbus.Bus] = None):
        """
        Initialize the connection.

        Args:
            bus: Existing bus to wrap (tests); a session bus is opened otherwise

        Raises:
            BusConnectionError: If the session bus is unreachable
        """
        if bus is None:
            DBusGMainLoop(set_as_default=True)
            try:
                bus = dbus.SessionBus()
            except dbus.exceptions.DBusException as e:
                raise BusConnectionError(f"Cannot connect to the session bus: {e}") from e
            # Loss of the bus is reported through on_disconnected instead of exit()
            bus.set_exit_on_disconnect(False)
        self.bus = bus
        self._signal_receivers = []

        self.on_disconnected: Optional[Callable[[], None]] = None
        self.add_signal_receiver(
            self._on_disconnected,
            signal_name='Disconnected',
            dbus_interface=DBUS_LOCAL_INTERFACE,
            path=DBUS_LOCAL_PATH,
        )

    def add_signal_receiver(self, handler: Callable, **match) -> None:
        """Subscribe to a signal; receivers are released by close()."""
        receiver = self.bus.add_signal_receiver(handler, **match)
        self._signal_receivers.append(receiver)

    def list_names(self) -> Sequence[str]:
        """Names currently owned on the bus (blocking, startup only)."""
        return [str(name) for name in dbus_safe_call(self.bus.list_names, default_return=[])]

    def get_name_owner(self, name: str) -> Optional[str]:
        """Unique name owning a well-known name, or None (blocking, startup only)."""
        owner = dbus_safe_call(lambda: self.bus.get_name_owner(name))
        return str(owner) if owner else None

    def call_async(self, bus_name: str, method: str, *,
                   interface: str = MPRIS2_PLAYER_INTERFACE,
                   signature: Optional[str] = None, args: tuple = (),
                   on_reply: Optional[Callable] = None,
                   on_error: Optional[Callable] = None,
                   timeout: float = 2.0) -> None:
        """
        Issue a method call on an MPRIS player without waiting for the reply.

        The reply (or error, including a timeout) is delivered later by the
        main loop to on_reply/on_error.

        Args:
            bus_name: Destination bus name
            method: Method name, e.g. 'Pause'
            interface: Interface the method belongs to
            signature: D-Bus signature of args
            args: Method arguments
            on_reply: Called with the reply values
            on_error: Called with the DBusException
            timeout: Reply timeout in seconds
        """
        def _reply(*values):
            if on_reply:
                on_reply(*values)

        def _error(error):
            if on_error:
                on_error(error)
            else:
                logger.warning("%s on %s failed: %s", method, bus_name, error)

        self.bus.call_async(
            bus_name, MPRIS2_OBJECT_PATH, interface, method, signature, args,
            _reply, _error, timeout=timeout,
        )

    def _on_disconnected(self, *args):
        logger.error("Session bus connection lost")
        if self.on_disconnected:
            self.on_disconnected()

    def close(self) -> None:
        """Drop signal receivers."""
        for receiver in self._signal_receivers:
            try:
                receiver.remove()
            except (AttributeError, dbus.exceptions.DBusException) as e:
                logger.debug("Error removing signal receiver: %s", e)
        self._signal_receivers.clear()
