"""Broker messaging — envelope decoding, dispatch and the Kafka consumer."""
