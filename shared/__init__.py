"""
elfscope Shared Module
======================

Configuration, logging, console presentation and report models used by the
``elfscope`` command and inspection engine.
"""

from shared.config import ScopeConfig, get_config

__all__ = ["ScopeConfig", "get_config"]
