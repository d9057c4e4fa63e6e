"""Configuration constants for task scheduling functionality."""

import os

# Scheduling
DEFAULT_PRIORITY = 0
DEFAULT_DUPLICATE_POLICY = "allow"  # allow, reject, replace

# Stuck task detection
DEFAULT_STUCK_TASK_TIMEOUT = 30 * 60  # seconds spent in PROCESSING

# Storage Configuration
DEFAULT_DATABASE_PATH = os.path.expanduser("~/.taskcore/tasks.db")
DEFAULT_WAL_MODE = True

# MCP Server Configuration
DEFAULT_MCP_HOST = "localhost"
DEFAULT_MCP_PORT = 3000
DEFAULT_MCP_SERVER_NAME = "taskcore-dispatch"

# Database Schema Version
SCHEMA_VERSION = 1
