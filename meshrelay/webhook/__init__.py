"""Inbound webhook handling: envelopes, loop guard, extraction and dispatch."""
