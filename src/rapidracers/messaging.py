"""Optional cache-invalidation fan-out between app instances over Zenoh.

Disabled unless ZENOH_ENABLED is set. Each process tags what it publishes with
its own SENDER_ID and ignores its own messages.
"""
import json
import logging
import os
import uuid

from rapidracers import settings

logger = logging.getLogger('RapidRacers.messaging')

TOPIC_INVALIDATE_CACHE = "rapidracers/invalidate_cache"
SENDER_ID = uuid.uuid4().hex  # unique per PID


def open_session(config_path=None):
    """Open a Zenoh session, or return None when messaging is unavailable."""
    try:
        import zenoh
        zenoh.init_log_from_env_or("info")
        if config_path and os.path.exists(config_path):
            logger.info("Loading zenoh config from %s", config_path)
            z_conf = zenoh.Config.from_file(config_path)
        else:
            logger.info("Loading default zenoh config")
            z_conf = zenoh.Config()
        return zenoh.open(z_conf)
    except Exception:
        logger.exception("Failed to initialize Zenoh")
        return None


class InvalidationBus:
    def __init__(self, session, topic=TOPIC_INVALIDATE_CACHE, sender_id=SENDER_ID):
        self.session = session
        self.topic = topic
        self.sender_id = sender_id

    def publish(self, key):
        if not self.session:
            logger.debug("Zenoh session invalid, not publishing invalidate cache message for %s", key)
            return
        try:
            self.session.put(self.topic, key, attachment=json.dumps({"SENDER_ID": self.sender_id}))
            logger.debug("Sender %s published invalidate cache for %s on %s", self.sender_id, key, self.topic)
        except Exception:
            logger.exception("Sender %s unable to publish invalidate cache for %s on %s", self.sender_id, key, self.topic)

    def handle_sample(self, sample, cache):
        sample_sender_id = json.loads(sample.attachment.to_string()).get("SENDER_ID")
        if sample_sender_id == self.sender_id:
            return
        key = sample.payload.to_string()
        logger.info("Sender ID %s received cache invalidation for %s from %s", self.sender_id, key, sample_sender_id)
        cache.invalidate(key, publish=False)

    def subscribe(self, cache):
        if self.session:
            self.session.declare_subscriber(self.topic, lambda sample: self.handle_sample(sample, cache))


def connect_cache(cache):
    """Wire ``cache`` to peers when ZENOH_ENABLED is set; returns the bus or None."""
    if not settings.zenoh_enabled():
        logger.info("Zenoh messaging has been disabled")
        return None
    bus = InvalidationBus(open_session(settings.ZENOH_CONFIG))
    cache.on_invalidate = bus.publish
    bus.subscribe(cache)
    return bus
