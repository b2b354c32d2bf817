"""Pytest bootstrap configuration.

Settings are read at import time; keep the test run independent of any
local .env targets.
"""
import os

os.environ.setdefault("HTTP__ENABLED", "false")
os.environ.setdefault("GRPC__ENABLED", "false")
