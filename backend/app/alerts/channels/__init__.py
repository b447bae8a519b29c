"""
channels — Push delivery backends.

Each channel exposes an async transport:
    await transport.send(subscription, payload) → DeliveryOutcome

Transports do not retry. Outcome accounting and subscription cleanup
live in alerts.notifications.
"""
