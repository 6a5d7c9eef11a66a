"""CapsLock indicator synchronisation package initialisation."""

__version__ = "1.0.0"

import logging
import sys

logger = logging.getLogger(__name__)


def _check_dependencies():
    """Verify the runtime environment provides the expected MQTT stack."""
    try:
        import paho.mqtt.client as mqtt

        # aiomqtt >= 2 drives paho-mqtt through CallbackAPIVersion.VERSION2.
        # paho-mqtt 1.x imports fine but fails later with attribute errors.
        if not hasattr(mqtt, "CallbackAPIVersion"):
            logger.critical(
                "FATAL: Incompatible paho-mqtt version detected. "
                "capsync requires paho-mqtt 2.x with CallbackAPIVersion support."
            )
            sys.exit(1)

    except ImportError:
        # If imports are missing entirely, Python will raise ImportError naturally later.
        pass


_check_dependencies()
