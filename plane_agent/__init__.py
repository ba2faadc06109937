"""
Plane Agent.

This package automates issue-ticket creation and classification against a
Plane project tracker, reacts to Plane webhook events, and drives Railway
deployments through its GraphQL API.
"""

__version__ = "1.0.0"
