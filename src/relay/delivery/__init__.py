"""Delivery to external sinks.

DeliveryEngine sends one payload to one webhook with retry/backoff and
optional HMAC signing. OutputDestinationManager fans a payload out to the
webhook, the tabular store and the JSON file, isolating failures per sink.
"""
