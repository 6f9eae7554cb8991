"""
Bucket Hub Client Module

This module contains the client implementation including:
- The BucketHubClient context object
- Bucket and file lifecycle orchestrators
- Background deletion tracking
- The HTTP client for the storage provider backend
"""

from .client import BucketHubClient, DeletionTracker
from .msp import MspHttpClient

__all__ = ['BucketHubClient', 'DeletionTracker', 'MspHttpClient']
