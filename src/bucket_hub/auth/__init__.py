"""
Authentication module for Bucket Hub

This module provides challenge-response (SIWE-style) login against the
storage provider backend, session bookkeeping, and short-lived session
persistence in the OS keyring.
"""

from .session import SessionManager, is_auth_error
from .store import KeyringSessionStore

__all__ = ['SessionManager', 'KeyringSessionStore', 'is_auth_error']
