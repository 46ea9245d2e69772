"""Outbound HTTP gateways.

Outbound webhook calls (cron alerts, AI publish dispatch) go through
``webhook_gateway.WebhookGateway``, never via bare ``requests`` calls in
services or blueprints.
"""
