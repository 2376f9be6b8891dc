"""Structural markers of the raw model output contract."""

REPLY_MARKER = "<<<BMS_REPLY>>>"
ACTIONS_MARKER = "<<<BMS_ACTIONS>>>"
