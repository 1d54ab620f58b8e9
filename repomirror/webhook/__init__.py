"""
Webhook — Minimal inbound trigger listener and the resync handler.
"""
