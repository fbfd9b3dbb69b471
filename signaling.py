"""Point-to-point forwarding of WebRTC negotiation messages.

Payloads are opaque. Delivery is fire-and-forget: a missing target is
dropped without telling the sender, and nothing is retried.
"""
import logging

from registry import ConnectionRegistry

log = logging.getLogger('relay.signaling')

# event -> payload field name on the wire
PAYLOAD_FIELDS = {
    'offer': 'offer',
    'answer': 'answer',
    'ice-candidate': 'candidate',
}

class SignalingRelay:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def relay(self, kind: str, payload, from_id: str, to_id: str) -> bool:
        field = PAYLOAD_FIELDS.get(kind)
        if field is None:
            raise ValueError(f'not a signaling message: {kind!r}')

        if to_id not in self.registry:
            log.debug('dropping %s from %s: %s is gone', kind, from_id, to_id)
            return False

        log.debug('%s %s -> %s', kind, from_id, to_id)
        return self.registry.deliver(to_id, kind, {
            field: payload,
            'from': from_id,
            'fromName': self.registry.name_of(from_id)
        })
